"""Revocation registry: per-token blacklist and per-user global-logout watermark.

Two independent mechanisms are consulted on every protected request:

- the blacklist revokes one token, keyed by the SHA-256 of the raw token;
- the watermark (``users.global_logout_at``) revokes every token of a user
  issued before it with a single row update.

The two read checks FAIL OPEN: if the backing store errors, the token is
treated as not revoked and an ERROR line is logged. A transient database
problem must not turn into a full authentication outage. Mutations do not
fail open; they raise ``RevocationStoreError``.
"""

import hashlib
import logging
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from citizen_auth.models.blacklisted_token import BlacklistedToken
from citizen_auth.models.user import User
from citizen_auth.services.errors import RevocationStoreError
from citizen_auth.services.tokens import Clock, system_clock

logger = logging.getLogger(__name__)

REASON_LOGOUT = "logout"
REASON_SECURITY = "security"
REASON_ADMIN = "admin"


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a raw token; the only form that is ever stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is written in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class RevocationRegistry:
    """Blacklist and global-logout watermark backed by the database."""

    def __init__(self, session: AsyncSession, clock: Clock = system_clock):
        self.session = session
        self._clock = clock

    # --- Blacklist ---

    async def _find_live_entry(self, token_hash: str) -> bool:
        # Savepoint: a failed read must not abort the request transaction
        try:
            async with self.session.begin_nested():
                result = await self.session.execute(
                    select(BlacklistedToken.token_hash).where(
                        BlacklistedToken.token_hash == token_hash,
                        BlacklistedToken.expires_at > self._clock(),
                    )
                )
        except (SQLAlchemyError, OSError) as e:
            raise RevocationStoreError(f"Blacklist lookup failed: {e}") from e
        return result.scalar_one_or_none() is not None

    async def is_blacklisted(self, token: str) -> bool:
        """True when a live blacklist entry exists for this token."""
        try:
            return await self._find_live_entry(hash_token(token))
        except RevocationStoreError as e:
            logger.error(f"FAIL-OPEN: blacklist check unavailable, treating token as not revoked: {e}")
            return False

    async def blacklist(
        self,
        token: str,
        user_id: UUID,
        expires_at: datetime,
        reason: str = REASON_LOGOUT,
    ) -> None:
        """Revoke a single token until its natural expiry.

        Inserting an already-revoked token is a no-op.
        """
        values = {
            "token_hash": hash_token(token),
            "user_id": user_id,
            "expires_at": expires_at,
            "reason": reason,
            "created_at": self._clock(),
        }
        dialect = self.session.get_bind().dialect.name
        insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
        stmt = insert(BlacklistedToken).values(**values)
        stmt = stmt.on_conflict_do_nothing(index_elements=[BlacklistedToken.token_hash])
        try:
            await self.session.execute(stmt)
            await self.session.flush()
        except (SQLAlchemyError, OSError) as e:
            raise RevocationStoreError(f"Could not blacklist token: {e}") from e
        logger.info(f"Token blacklisted for user {user_id}, reason: {reason}")

    # --- Global logout watermark ---

    async def _get_watermark(self, user_id: UUID) -> datetime | None:
        try:
            async with self.session.begin_nested():
                result = await self.session.execute(
                    select(User.global_logout_at).where(User.id == user_id)
                )
        except (SQLAlchemyError, OSError) as e:
            raise RevocationStoreError(f"Watermark lookup failed: {e}") from e
        return result.scalar_one_or_none()

    async def is_globally_logged_out(self, user_id: UUID, issued_at: float) -> bool:
        """True when the user's watermark is strictly later than ``issued_at``.

        ``issued_at`` is the token's ``iat`` as a Unix timestamp.
        """
        try:
            watermark = await self._get_watermark(user_id)
        except RevocationStoreError as e:
            logger.error(f"FAIL-OPEN: global logout check unavailable, treating token as not revoked: {e}")
            return False
        if watermark is None:
            return False
        return as_utc(watermark).timestamp() > float(issued_at)

    async def bump_watermark(self, user_id: UUID) -> datetime:
        """Set the user's watermark to now, invalidating every earlier token."""
        now = self._clock()
        try:
            await self.session.execute(
                update(User)
                .where(User.id == user_id)
                .values(global_logout_at=now, updated_at=now)
            )
            await self.session.flush()
        except (SQLAlchemyError, OSError) as e:
            raise RevocationStoreError(f"Could not update global logout watermark: {e}") from e
        logger.info(f"Global logout watermark set for user {user_id}")
        return now

    # --- Maintenance ---

    async def cleanup_expired(self) -> int:
        """Remove entries whose mirrored expiry has passed. Returns count removed."""
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            delete(BlacklistedToken).where(BlacklistedToken.expires_at <= self._clock())
        )
        return result.rowcount

    async def stats(self) -> dict[str, Any]:
        """Counts of live blacklist entries, by reason, and logouts in the last 24h."""
        now = self._clock()
        live = BlacklistedToken.expires_at > now

        total = await self.session.scalar(
            select(func.count()).select_from(BlacklistedToken).where(live)
        )
        by_reason_rows = await self.session.execute(
            select(BlacklistedToken.reason, func.count())
            .where(live)
            .group_by(BlacklistedToken.reason)
        )
        recent_logouts = await self.session.scalar(
            select(func.count())
            .select_from(BlacklistedToken)
            .where(
                BlacklistedToken.reason == REASON_LOGOUT,
                BlacklistedToken.created_at > now - timedelta(hours=24),
            )
        )
        return {
            "total_blacklisted_tokens": total or 0,
            "tokens_by_reason": {reason: count for reason, count in by_reason_rows.all()},
            "recent_logouts_24h": recent_logouts or 0,
            "last_updated": now,
        }
