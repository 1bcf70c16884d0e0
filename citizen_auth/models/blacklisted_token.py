"""Individually revoked tokens, keyed by the SHA-256 of the raw token."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from citizen_auth.core.database import Base
from citizen_auth.models.base import utcnow


class BlacklistedToken(Base):
    """A revoked token.

    Only the hash is stored. ``expires_at`` mirrors the token's own expiry
    so the row can be garbage-collected once the token would have died
    anyway.
    """

    __tablename__ = "blacklisted_tokens"

    token_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    reason: Mapped[str] = mapped_column(String(32), nullable=False, default="logout")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
