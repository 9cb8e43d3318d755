"""Sprint model."""

from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flowops.db.base import BaseModel

if TYPE_CHECKING:
    from flowops.models.user import User

SPRINT_STATUSES = ("planned", "active", "completed")


class Sprint(BaseModel):
    """Time-boxed iteration of a project.

    Status moves planned -> active -> completed and never back. At most one
    sprint per project is active; the partial unique index backs the check
    done in ``SprintService.start``.
    """

    __tablename__ = "sprints"
    __table_args__ = (
        Index(
            "uq_sprints_one_active_per_project",
            "project_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    goal: Mapped[str | None] = mapped_column(String(500), nullable=True)
    project_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="planned")
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    velocity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_by_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_by: Mapped["User | None"] = relationship("User", lazy="joined")

    @property
    def duration_days(self) -> int:
        if self.start_date and self.end_date:
            return (self.end_date - self.start_date).days
        return 0

    def __repr__(self) -> str:
        return f"<Sprint {self.name} ({self.status})>"
