"""Activity and notification models for tracking user actions and alerts."""

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flowops.db.base import BaseModel, JSONType

if TYPE_CHECKING:
    from flowops.models.project import Project
    from flowops.models.task import Task
    from flowops.models.user import User

ACTIVITY_TARGET_TYPES = ("project", "task", "user", "sprint", "team", "comment")

NOTIFICATION_TYPES = (
    "task_assigned",
    "task_commented",
    "task_mentioned",
    "task_status_changed",
    "sprint_started",
    "sprint_completed",
    "task_due_soon",
)


class Activity(BaseModel):
    """
    Append-only log of user actions.

    Powers the activity feeds; rows are never updated.
    """

    __tablename__ = "activities"

    action: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Action performed (e.g., 'task.created', 'sprint.completed')",
    )
    user_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    target_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="Type of entity affected (project, task, user, sprint, team, comment)",
    )
    target_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        nullable=False,
        index=True,
        comment="ID of the affected entity",
    )
    details: Mapped[dict | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Free-form context (titles, changed fields, ...)",
    )

    user: Mapped["User | None"] = relationship("User", lazy="joined")


class Notification(BaseModel):
    """
    In-app notification addressed to one user.
    """

    __tablename__ = "notifications"

    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    related_task_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=True,
    )
    related_project_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=True,
    )

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)

    related_task: Mapped["Task | None"] = relationship("Task", lazy="selectin")
    related_project: Mapped["Project | None"] = relationship("Project", lazy="selectin")
