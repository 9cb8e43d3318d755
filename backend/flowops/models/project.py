"""Project, membership and label models."""

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flowops.db.base import BaseModel

if TYPE_CHECKING:
    from flowops.models.user import User

PROJECT_STATUSES = ("planned", "in_progress", "completed")


class Project(BaseModel):
    """Project with one owner and a set of members.

    The owner is never stored in ``members``.
    """

    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    key: Mapped[str] = mapped_column(String(10), unique=True, nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="planned"
    )  # planned, in_progress, completed

    owner_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Last issued task number; bumped atomically when a task is created
    task_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Relationships
    owner: Mapped["User"] = relationship("User", foreign_keys=[owner_id], lazy="joined")
    members: Mapped[list["ProjectMember"]] = relationship(
        "ProjectMember",
        back_populates="project",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="ProjectMember.created_at",
    )

    @property
    def member_ids(self) -> frozenset[UUID]:
        return frozenset(m.user_id for m in self.members)

    def has_member(self, user_id: UUID) -> bool:
        return user_id in self.member_ids

    def __repr__(self) -> str:
        try:
            return f"<Project {self.key}>"
        except Exception:
            return f"<Project id={self.id}>"


class ProjectMember(BaseModel):
    """Project membership (set semantics; one row per user)."""

    __tablename__ = "project_members"
    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_member"),
    )

    project_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Relationships
    project: Mapped["Project"] = relationship("Project", back_populates="members")
    user: Mapped["User"] = relationship("User", lazy="joined")

    def __repr__(self) -> str:
        return f"<ProjectMember project={self.project_id} user={self.user_id}>"


class Label(BaseModel):
    """Label scoped to a project; names are unique within the project."""

    __tablename__ = "labels"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_label_project_name"),
    )

    name: Mapped[str] = mapped_column(String(50), nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#6c757d")
    project_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_by_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_by: Mapped["User | None"] = relationship("User", lazy="joined")

    def __repr__(self) -> str:
        return f"<Label {self.name}>"
