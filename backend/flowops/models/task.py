"""Task model and the records hanging off a task.

Comments, time logs, issue links and attachments all reference a task and
are removed together with it (see ``services.cascade``).
"""

from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flowops.db.base import Base, BaseModel, utcnow

if TYPE_CHECKING:
    from flowops.models.project import Label, Project
    from flowops.models.user import User

TASK_TYPES = ("task", "bug", "story", "epic", "subtask")
TASK_STATUSES = ("todo", "doing", "review", "done")
TASK_PRIORITIES = ("lowest", "low", "medium", "high", "highest")
STORY_POINTS = (0, 1, 2, 3, 5, 8, 13, 21)

LINK_TYPES = (
    "blocks",
    "is_blocked_by",
    "relates_to",
    "duplicates",
    "is_duplicated_by",
    "clones",
    "is_cloned_by",
)


task_labels = Table(
    "task_labels",
    Base.metadata,
    Column("task_id", Uuid(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("label_id", Uuid(as_uuid=True), ForeignKey("labels.id", ondelete="CASCADE"), primary_key=True),
)

task_watchers = Table(
    "task_watchers",
    Base.metadata,
    Column("task_id", Uuid(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Task(BaseModel):
    """Task within a project.

    Time fields are minutes. ``time_spent`` is the sum of the task's time
    logs and ``remaining_estimate`` is ``max(0, original_estimate - time_spent)``.
    """

    __tablename__ = "tasks"
    __table_args__ = (
        UniqueConstraint("project_id", "task_key", name="uq_task_project_key"),
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="task")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="todo", index=True
    )  # todo, doing, review, done
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="medium")
    story_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Time tracking (minutes)
    original_estimate: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    time_spent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    remaining_estimate: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    project_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    assignee_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    reporter_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    parent_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    sprint_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("sprints.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Human readable key, e.g. FLOW-12; immutable once assigned
    task_key: Mapped[str] = mapped_column(String(32), nullable=False, index=True)

    # Relationships
    assignee: Mapped["User | None"] = relationship("User", foreign_keys=[assignee_id], lazy="joined")
    reporter: Mapped["User"] = relationship("User", foreign_keys=[reporter_id], lazy="joined")
    parent: Mapped["Task | None"] = relationship(
        "Task",
        remote_side="Task.id",
        foreign_keys=[parent_id],
        lazy="joined",
        join_depth=1,
    )
    # Loaded explicitly where needed (selectinload)
    project: Mapped["Project"] = relationship("Project")
    labels: Mapped[list["Label"]] = relationship(
        "Label", secondary=task_labels, lazy="selectin", order_by="Label.name"
    )
    watchers: Mapped[list["User"]] = relationship(
        "User", secondary=task_watchers, lazy="selectin"
    )

    @property
    def watcher_ids(self) -> frozenset[UUID]:
        return frozenset(w.id for w in self.watchers)

    def __repr__(self) -> str:
        try:
            return f"<Task {self.task_key}>"
        except Exception:
            return f"<Task id={self.id}>"


class Comment(BaseModel):
    """Comment on a task, with the users it mentions."""

    __tablename__ = "comments"

    content: Mapped[str] = mapped_column(Text, nullable=False)
    task_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    is_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    author: Mapped["User"] = relationship("User", lazy="joined")
    mentions: Mapped[list["CommentMention"]] = relationship(
        "CommentMention",
        back_populates="comment",
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class CommentMention(BaseModel):
    """User mentioned in a comment via ``@[Name](userId)``."""

    __tablename__ = "comment_mentions"
    __table_args__ = (
        UniqueConstraint("comment_id", "user_id", name="uq_comment_mention"),
    )

    comment_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("comments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    comment: Mapped["Comment"] = relationship("Comment", back_populates="mentions")
    user: Mapped["User"] = relationship("User", lazy="joined")


class TimeLog(BaseModel):
    """Minutes a user spent on a task."""

    __tablename__ = "time_logs"
    __table_args__ = (
        CheckConstraint("time_spent >= 1", name="ck_time_log_minimum"),
    )

    task_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    time_spent: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    logged_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    user: Mapped["User"] = relationship("User", lazy="joined")


class IssueLink(BaseModel):
    """Directed, typed edge between two tasks.

    Stored once; the inverse view is derived with the reverse-type map in
    ``services.issue_links``.
    """

    __tablename__ = "issue_links"
    __table_args__ = (
        UniqueConstraint("source_task_id", "target_task_id", "link_type", name="uq_issue_link"),
        CheckConstraint("source_task_id <> target_task_id", name="ck_issue_link_not_self"),
    )

    link_type: Mapped[str] = mapped_column(String(30), nullable=False)
    source_task_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    target_task_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_by_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    source_task: Mapped["Task"] = relationship("Task", foreign_keys=[source_task_id], lazy="joined")
    target_task: Mapped["Task"] = relationship("Task", foreign_keys=[target_task_id], lazy="joined")
    created_by: Mapped["User | None"] = relationship("User", lazy="joined")


class Attachment(BaseModel):
    """File uploaded to a task; the bytes live under ``settings.upload_dir``."""

    __tablename__ = "attachments"

    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    mimetype: Mapped[str] = mapped_column(String(255), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    path: Mapped[str] = mapped_column(String(1000), nullable=False)
    task_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    uploaded_by_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    uploaded_by: Mapped["User"] = relationship("User", lazy="joined")

    @property
    def formatted_size(self) -> str:
        if self.size < 1024:
            return f"{self.size} B"
        if self.size < 1024 * 1024:
            return f"{self.size / 1024:.1f} KB"
        return f"{self.size / (1024 * 1024):.1f} MB"
