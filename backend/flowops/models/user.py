"""User model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from flowops.db.base import BaseModel

USER_ROLES = ("admin", "project_manager", "member")


class User(BaseModel):
    """Account with a global role (admin, project_manager, member)."""

    __tablename__ = "users"

    # Basic info
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    avatar: Mapped[str | None] = mapped_column(String(500), nullable=True)

    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="member"
    )  # admin, project_manager, member

    # Credentials
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    reset_password_token: Mapped[str | None] = mapped_column(
        String(64), nullable=True, index=True
    )  # sha256 hex of the emailed token
    reset_password_expire: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    refresh_token: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Account status
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self) -> str:
        try:
            return f"<User {self.email}>"
        except Exception:
            return f"<User id={self.id}>"
