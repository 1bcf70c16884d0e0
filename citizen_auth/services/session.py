"""Session authenticator: decides whether an inbound request is authenticated.

Runs a fixed pipeline per request and ends in either an
``AuthenticatedSession`` or an ``AuthenticationRejected`` carrying the
reason code surfaced to HTTP callers:

1. bearer token present, else TOKEN_REQUIRED
2. signature/issuer/audience/expiry valid, else TOKEN_EXPIRED or INVALID_TOKEN
3. ``type == access``, else INVALID_TOKEN_TYPE
4. not on the blacklist, else TOKEN_BLACKLISTED
5. issued after the user's global-logout watermark, else TOKEN_GLOBALLY_INVALIDATED
6. user exists and is active, else USER_NOT_FOUND / ACCOUNT_DEACTIVATED
"""

import logging
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from citizen_auth.services.errors import (
    AuthError,
    TokenError,
    TokenExpiredError,
)
from citizen_auth.services.revocation import RevocationRegistry
from citizen_auth.services.tokens import TokenVerifier
from citizen_auth.services.users import IdentitySnapshot, UserStore

logger = logging.getLogger(__name__)


class RejectionReason(str, Enum):
    """Why a request was not authenticated. Values are the wire codes."""

    TOKEN_REQUIRED = "TOKEN_REQUIRED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_TOKEN_TYPE = "INVALID_TOKEN_TYPE"
    TOKEN_BLACKLISTED = "TOKEN_BLACKLISTED"
    TOKEN_GLOBALLY_INVALIDATED = "TOKEN_GLOBALLY_INVALIDATED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    ACCOUNT_DEACTIVATED = "ACCOUNT_DEACTIVATED"


_MESSAGES = {
    RejectionReason.TOKEN_REQUIRED: "Access token is required",
    RejectionReason.TOKEN_EXPIRED: "Access token has expired",
    RejectionReason.INVALID_TOKEN: "Invalid access token",
    RejectionReason.INVALID_TOKEN_TYPE: "Invalid token type",
    RejectionReason.TOKEN_BLACKLISTED: "Token has been invalidated",
    RejectionReason.TOKEN_GLOBALLY_INVALIDATED: "All sessions have been invalidated. Please log in again.",
    RejectionReason.USER_NOT_FOUND: "User not found",
    RejectionReason.ACCOUNT_DEACTIVATED: "Account has been deactivated",
}


class AuthenticationRejected(AuthError):
    """Terminal rejection of the current request."""

    def __init__(self, reason: RejectionReason, message: str | None = None):
        super().__init__(message or _MESSAGES[reason])
        self.reason = reason
        self.message = message or _MESSAGES[reason]


@dataclass(frozen=True)
class AuthenticatedSession:
    """Result of a successful authentication.

    ``identity`` comes from the token claims, not a fresh database row.
    ``token`` is the raw bearer token, kept so handlers can revoke it.
    """

    identity: IdentitySnapshot
    token: str

    @property
    def user_id(self) -> UUID:
        return self.identity.id


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer <token>`` header.

    The scheme name is case-insensitive.
    """
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


class SessionAuthenticator:
    """Combines token verification, revocation checks and account status."""

    def __init__(
        self,
        verifier: TokenVerifier,
        registry: RevocationRegistry,
        users: UserStore,
    ):
        self.verifier = verifier
        self.registry = registry
        self.users = users

    def _reject(self, reason: RejectionReason, detail: str = "") -> AuthenticationRejected:
        suffix = f" ({detail})" if detail else ""
        logger.warning(
            f"Authentication rejected: {reason.value}{suffix}", extra={"code": reason.value}
        )
        return AuthenticationRejected(reason)

    async def authenticate(self, authorization: str | None) -> AuthenticatedSession:
        """Authenticate a request from its Authorization header value.

        Raises:
            AuthenticationRejected: with the first failing check's reason
        """
        token = extract_bearer_token(authorization)
        if token is None:
            raise self._reject(RejectionReason.TOKEN_REQUIRED)

        try:
            claims = self.verifier.verify(token)
        except TokenExpiredError as e:
            raise self._reject(RejectionReason.TOKEN_EXPIRED) from e
        except TokenError as e:
            raise self._reject(RejectionReason.INVALID_TOKEN, str(e)) from e

        if claims.get("type") != "access":
            raise self._reject(
                RejectionReason.INVALID_TOKEN_TYPE, f"got {claims.get('type')!r}"
            )

        try:
            identity = IdentitySnapshot.from_claims(claims)
        except (KeyError, ValueError) as e:
            raise self._reject(RejectionReason.INVALID_TOKEN, "bad subject claim") from e

        if await self.registry.is_blacklisted(token):
            raise self._reject(RejectionReason.TOKEN_BLACKLISTED, f"user {identity.id}")

        if await self.registry.is_globally_logged_out(identity.id, claims["iat"]):
            raise self._reject(RejectionReason.TOKEN_GLOBALLY_INVALIDATED, f"user {identity.id}")

        try:
            user = await self.users.find_by_id(identity.id)
        except (SQLAlchemyError, OSError) as e:
            # Account status cannot be confirmed; this check does not fail open
            logger.error(f"User lookup failed during authentication: {e}")
            raise self._reject(RejectionReason.USER_NOT_FOUND, "lookup failed") from e

        if user is None:
            raise self._reject(RejectionReason.USER_NOT_FOUND, f"user {identity.id}")
        if not user.is_active:
            raise self._reject(RejectionReason.ACCOUNT_DEACTIVATED, f"user {identity.id}")

        return AuthenticatedSession(identity=identity, token=token)

    async def authenticate_optional(self, authorization: str | None) -> AuthenticatedSession | None:
        """Same pipeline, but any rejection yields an anonymous caller (None)."""
        if extract_bearer_token(authorization) is None:
            return None
        try:
            return await self.authenticate(authorization)
        except AuthenticationRejected as e:
            logger.debug(f"Optional authentication proceeding anonymously: {e.reason.value}")
            return None
