"""Citizen account model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from citizen_auth.models.base import BaseModel


class User(BaseModel):
    """A citizen (or staff) account.

    Email is stored lower-cased and the NIC upper-cased so that both unique
    constraints are case-insensitive. Accounts are never hard-deleted here;
    deactivation flips ``is_active``.

    ``global_logout_at`` is the global-logout watermark: every token whose
    issued-at precedes it is rejected.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    nic_number: Mapped[str] = mapped_column(String(12), nullable=False, unique=True, index=True)
    phone_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default="citizen")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    global_logout_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # SHA-256 of the outstanding password-reset token, never the token itself
    reset_token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    reset_token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<User {self.email}>"
