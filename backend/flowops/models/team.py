"""Team and team membership models."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from flowops.db.base import BaseModel, utcnow

if TYPE_CHECKING:
    from flowops.models.user import User

TEAM_MEMBER_ROLES = ("lead", "developer", "designer", "qa", "devops", "member")


class Team(BaseModel):
    """Team inside a project. Names are unique per project."""

    __tablename__ = "teams"
    __table_args__ = (
        UniqueConstraint("project_id", "name", name="uq_team_project_name"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    project_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#6366f1")
    lead_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Relationships
    lead: Mapped["User | None"] = relationship("User", foreign_keys=[lead_id], lazy="joined")
    created_by: Mapped["User | None"] = relationship(
        "User", foreign_keys=[created_by_id], lazy="joined"
    )
    members: Mapped[list["TeamMember"]] = relationship(
        "TeamMember",
        back_populates="team",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="TeamMember.joined_at",
    )

    @property
    def member_ids(self) -> frozenset[UUID]:
        return frozenset(m.user_id for m in self.members)

    def get_member(self, user_id: UUID) -> "TeamMember | None":
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def __repr__(self) -> str:
        return f"<Team {self.name}>"


class TeamMember(BaseModel):
    """Team membership with a functional role."""

    __tablename__ = "team_members"
    __table_args__ = (
        UniqueConstraint("team_id", "user_id", name="uq_team_member"),
    )

    team_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("teams.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="member"
    )  # lead, developer, designer, qa, devops, member
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    # Relationships
    team: Mapped["Team"] = relationship("Team", back_populates="members")
    user: Mapped["User"] = relationship("User", lazy="joined")

    def __repr__(self) -> str:
        return f"<TeamMember team={self.team_id} user={self.user_id}>"
