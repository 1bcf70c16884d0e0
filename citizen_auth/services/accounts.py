"""Account flows built on the token-lifecycle core.

Registration, login, refresh, logout, logout-everywhere, password change,
password reset, profile updates and deactivation. Each flow works inside
the request's database session; the ``get_db`` dependency commits or
rolls back around it.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from citizen_auth.core.config import Settings
from citizen_auth.models.user import User
from citizen_auth.services.errors import (
    InvalidCredentialsError,
    InvalidResetTokenError,
    UserInactiveError,
    UserNotFoundError,
)
from citizen_auth.services.passwords import (
    ensure_password_strength,
    hash_password,
    needs_rehash,
    verify_password,
)
from citizen_auth.services.revocation import (
    REASON_LOGOUT,
    RevocationRegistry,
    as_utc,
    hash_token,
)
from citizen_auth.services.session import AuthenticatedSession
from citizen_auth.services.tokens import (
    Clock,
    TokenIssuer,
    TokenPair,
    TokenVerifier,
    system_clock,
)
from citizen_auth.services.users import IdentitySnapshot, UserStore

logger = logging.getLogger(__name__)

# Verified against when the email is unknown so both failure paths cost one hash check
_DUMMY_HASH = hash_password("dummy-password-for-timing")


@dataclass
class RegistrationData:
    email: str
    password: str
    first_name: str
    last_name: str
    nic_number: str
    phone_number: str | None = None


class AccountService:
    """Service for citizen account and session operations."""

    def __init__(
        self,
        session: AsyncSession,
        issuer: TokenIssuer,
        verifier: TokenVerifier,
        settings: Settings,
        registry: RevocationRegistry | None = None,
        users: UserStore | None = None,
        clock: Clock = system_clock,
    ):
        self.session = session
        self.issuer = issuer
        self.verifier = verifier
        self.settings = settings
        self.registry = registry or RevocationRegistry(session)
        self.users = users or UserStore(session)
        self._clock = clock

    async def _require_user(self, user_id: UUID) -> User:
        user = await self.users.find_by_id(user_id)
        if user is None:
            raise UserNotFoundError("User not found")
        return user

    async def register(self, data: RegistrationData) -> tuple[User, TokenPair]:
        """Create a citizen account and log it in.

        Raises:
            WeakPasswordError: password fails the strength policy
            UserAlreadyExistsError: email or NIC number already registered
        """
        ensure_password_strength(data.password, self.settings.password_min_score)
        user = await self.users.create(
            email=data.email,
            password_hash=hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            nic_number=data.nic_number,
            phone_number=data.phone_number,
        )
        logger.info(f"User registered: {user.email}")
        return user, self.issuer.issue_token_pair(IdentitySnapshot.from_user(user))

    async def login(self, email: str, password: str) -> tuple[User, TokenPair]:
        """Verify credentials and issue a fresh token pair.

        Raises InvalidCredentialsError for both "no such email" and
        "wrong password" to prevent account enumeration.
        """
        user = await self.users.find_by_email(email)

        if user is None:
            verify_password(password, _DUMMY_HASH)
            logger.info("Login failed: unknown email")
            raise InvalidCredentialsError("Invalid email or password")

        if not user.is_active:
            logger.info(f"Login refused for deactivated account {user.email}")
            raise UserInactiveError("Account has been deactivated")

        if not verify_password(password, user.password_hash):
            logger.info(f"Login failed: wrong password for {user.email}")
            raise InvalidCredentialsError("Invalid email or password")

        if needs_rehash(user.password_hash):
            await self.users.set_password_hash(user.id, hash_password(password))

        await self.users.touch_last_login(user)
        logger.info(f"User logged in: {user.email}")
        return user, self.issuer.issue_token_pair(IdentitySnapshot.from_user(user))

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair.

        Refresh tokens are not rotated and the revocation registry is not
        consulted here: a refresh token stays usable until its own expiry
        even after logout-everywhere. Only the user's existence and active
        flag are re-checked.

        Raises:
            TokenError: refresh token invalid, expired or of the wrong type
            UserNotFoundError / UserInactiveError: account no longer usable
        """
        claims = self.verifier.verify_refresh(refresh_token)
        try:
            user_id = UUID(str(claims["id"]))
        except ValueError as e:
            raise UserNotFoundError("Token subject is not a user id") from e

        user = await self._require_user(user_id)
        if not user.is_active:
            raise UserInactiveError("Account has been deactivated")

        logger.info(f"Tokens refreshed for user {user.id}")
        return self.issuer.issue_token_pair(IdentitySnapshot.from_user(user))

    async def logout(self, session: AuthenticatedSession) -> None:
        """Revoke the current access token until its natural expiry."""
        await self.registry.blacklist(
            session.token,
            session.user_id,
            self.verifier.expires_at(session.token),
            reason=REASON_LOGOUT,
        )
        logger.info(f"User logged out: {session.identity.email}")

    async def logout_everywhere(self, user_id: UUID) -> None:
        """Invalidate every token issued to the user so far."""
        await self.registry.bump_watermark(user_id)
        logger.info(f"All sessions invalidated for user {user_id}")

    async def change_password(self, user_id: UUID, current_password: str, new_password: str) -> None:
        """Change the password and force re-authentication on every device.

        Raises:
            InvalidCredentialsError: current password is wrong
            WeakPasswordError: new password fails the strength policy
        """
        user = await self._require_user(user_id)
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")

        ensure_password_strength(new_password, self.settings.password_min_score)
        await self.users.set_password_hash(user.id, hash_password(new_password))
        await self.registry.bump_watermark(user.id)
        logger.info(f"Password changed for user: {user.email}")

    async def deactivate(self, user_id: UUID, password: str) -> None:
        """Deactivate the account after confirming the password."""
        user = await self._require_user(user_id)
        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError("Password is incorrect")

        await self.users.deactivate(user.id)
        await self.registry.bump_watermark(user.id)
        logger.info(f"Account deactivated: {user.email}")

    async def admin_deactivate(self, user_id: UUID) -> User:
        """Deactivate another user's account and invalidate all of its tokens."""
        user = await self._require_user(user_id)
        await self.users.deactivate(user.id)
        await self.registry.bump_watermark(user.id)
        logger.info(f"Account deactivated by administrator: {user.email}")
        return user

    async def update_profile(self, user_id: UUID, changes: dict[str, Any]) -> User:
        """Update the editable profile fields.

        Tokens already issued keep their old name claims until they are
        refreshed; the stored profile is the source of truth.
        """
        user = await self._require_user(user_id)
        user = await self.users.update_profile(user, changes)
        logger.info(f"Profile updated for user {user.id}: {sorted(changes)}")
        return user

    # --- Password reset ---

    async def request_password_reset(self, identifier: str) -> str | None:
        """Issue a single-use reset token for the active account behind ``identifier``.

        ``identifier`` may be an email address, phone number or NIC number.
        Returns the raw token for delivery, or None when no active account
        matches. Callers must answer the same way in both cases. Only the
        token's SHA-256 is stored.
        """
        user = await self.users.find_by_identifier(identifier)
        if user is None or not user.is_active:
            logger.info("Password reset requested for unknown or inactive account")
            return None

        token = secrets.token_urlsafe(32)
        expires_at = self._clock() + timedelta(
            minutes=self.settings.password_reset_token_expire_minutes
        )
        await self.users.set_reset_token(user.id, hash_token(token), expires_at)
        logger.info(f"Password reset requested for user {user.id}")
        return token

    async def reset_password(self, token: str, new_password: str) -> User:
        """Set a new password using a reset token and log out every session.

        The token is consumed on success.

        Raises:
            WeakPasswordError: new password fails the strength policy
            InvalidResetTokenError: token unknown, used, expired, or the account is inactive
        """
        ensure_password_strength(new_password, self.settings.password_min_score)

        user = await self.users.find_by_reset_token_hash(hash_token(token))
        if user is None or user.reset_token_expires_at is None:
            raise InvalidResetTokenError("Invalid or expired reset token")
        if self._clock() >= as_utc(user.reset_token_expires_at):
            logger.info(f"Expired password reset token presented for user {user.id}")
            raise InvalidResetTokenError("Invalid or expired reset token")
        if not user.is_active:
            raise InvalidResetTokenError("Invalid or expired reset token")

        await self.users.set_password_hash(user.id, hash_password(new_password))
        await self.users.clear_reset_token(user.id)
        await self.registry.bump_watermark(user.id)
        logger.info(f"Password reset completed for user: {user.email}")
        return user
