"""Token issuer and verifier for signed access/refresh token pairs.

Both classes take the signing secret and the trust-domain claims (issuer,
audience) as constructor arguments; nothing here reads configuration on
its own. ``clock`` is injectable so expiry can be tested deterministically.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import jwt
from jwt.exceptions import DecodeError, InvalidSignatureError, PyJWTError

from citizen_auth.core.config import Settings
from citizen_auth.services.errors import (
    MalformedTokenError,
    TokenExpiredError,
    UnverifiableTokenError,
    WrongTokenTypeError,
)
from citizen_auth.services.users import IdentitySnapshot


Clock = Callable[[], datetime]

ACCESS = "access"
REFRESH = "refresh"

REQUIRED_CLAIMS = ["id", "type", "iat", "exp", "iss", "aud"]


def system_clock() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class TokenPair:
    """An access/refresh pair as returned to clients."""

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"


class TokenIssuer:
    """Mints independently signed access and refresh tokens."""

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        issuer: str,
        audience: str,
        access_ttl_seconds: int,
        refresh_ttl_seconds: int,
        clock: Clock = system_clock,
    ):
        if not secret:
            raise ValueError("TokenIssuer requires a non-empty secret")
        self._secret = secret
        self._algorithm = algorithm
        self._issuer = issuer
        self._audience = audience
        self.access_ttl_seconds = access_ttl_seconds
        self.refresh_ttl_seconds = refresh_ttl_seconds
        self._clock = clock

    def _sign(self, claims: dict[str, Any], ttl_seconds: int) -> str:
        now = self._clock()
        # Fractional iat so a watermark set within the same second stays ordered
        claims.update(
            iat=now.timestamp(),
            exp=int(now.timestamp()) + ttl_seconds,
            iss=self._issuer,
            aud=self._audience,
        )
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def create_access_token(self, identity: IdentitySnapshot) -> str:
        """Create a short-lived access token carrying the identity snapshot."""
        return self._sign(
            {
                "id": str(identity.id),
                "email": identity.email,
                "role": identity.role or "citizen",
                "firstName": identity.first_name,
                "lastName": identity.last_name,
                "nicNumber": identity.nic_number,
                "type": ACCESS,
            },
            self.access_ttl_seconds,
        )

    def create_refresh_token(self, identity: IdentitySnapshot) -> str:
        """Create a long-lived refresh token."""
        return self._sign(
            {"id": str(identity.id), "email": identity.email, "type": REFRESH},
            self.refresh_ttl_seconds,
        )

    def issue_token_pair(self, identity: IdentitySnapshot) -> TokenPair:
        return TokenPair(
            access_token=self.create_access_token(identity),
            refresh_token=self.create_refresh_token(identity),
            expires_in=self.access_ttl_seconds,
        )


class TokenVerifier:
    """Validates signature, issuer/audience and expiry of tokens.

    Knows nothing about revocation; that is layered on by the session
    authenticator.
    """

    def __init__(
        self,
        secret: str,
        *,
        algorithm: str = "HS256",
        issuer: str,
        audience: str,
        clock: Clock = system_clock,
    ):
        if not secret:
            raise ValueError("TokenVerifier requires a non-empty secret")
        self._secret = secret
        self._algorithm = algorithm
        self._issuer = issuer
        self._audience = audience
        self._clock = clock

    def verify(self, token: str) -> dict[str, Any]:
        """Decode and validate a token, returning its claims.

        A token is expired from the instant ``now >= exp``.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                issuer=self._issuer,
                audience=self._audience,
                # Expiry is checked below against the injected clock
                options={
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": REQUIRED_CLAIMS,
                },
            )
        except InvalidSignatureError as e:
            raise UnverifiableTokenError("Token signature verification failed") from e
        except DecodeError as e:
            raise MalformedTokenError(f"Malformed token: {e}") from e
        except PyJWTError as e:
            raise UnverifiableTokenError(f"Invalid token: {e}") from e

        for claim in ("exp", "iat"):
            value = claims[claim]
            if not isinstance(value, (int, float)) or isinstance(value, bool):
                raise UnverifiableTokenError(f"Token has a non-numeric {claim} claim")

        exp = claims["exp"]
        if self._clock().timestamp() >= exp:
            raise TokenExpiredError("Token has expired")
        return claims

    def verify_access(self, token: str) -> dict[str, Any]:
        """Validate an access token and return its claims."""
        claims = self.verify(token)
        if claims.get("type") != ACCESS:
            raise WrongTokenTypeError("Not an access token")
        return claims

    def verify_refresh(self, token: str) -> dict[str, Any]:
        """Validate a refresh token and return its claims."""
        claims = self.verify(token)
        if claims.get("type") != REFRESH:
            raise WrongTokenTypeError("Not a refresh token")
        return claims

    def decode_unverified(self, token: str) -> dict[str, Any]:
        """UNSAFE: read claims without checking the signature or expiry.

        Only for inspecting a token the caller already trusts (for example
        reading ``exp`` of a token the authenticator just accepted). Never
        use the result to grant access.
        """
        try:
            return jwt.decode(token, options={"verify_signature": False})
        except PyJWTError as e:
            raise MalformedTokenError(f"Malformed token: {e}") from e

    def is_expired(self, token: str) -> bool:
        """Expiry pre-check built on the unverified decode."""
        try:
            exp = self.decode_unverified(token).get("exp")
        except MalformedTokenError:
            return True
        if not isinstance(exp, (int, float)):
            return True
        return self._clock().timestamp() >= exp

    def expires_at(self, token: str) -> datetime:
        """Natural expiry of a token the caller already trusts."""
        exp = self.decode_unverified(token).get("exp")
        if not isinstance(exp, (int, float)):
            raise MalformedTokenError("Token has no usable exp claim")
        return datetime.fromtimestamp(exp, tz=UTC)


def build_token_issuer(cfg: Settings, clock: Clock = system_clock) -> TokenIssuer:
    return TokenIssuer(
        cfg.effective_jwt_secret_key,
        algorithm=cfg.jwt_algorithm,
        issuer=cfg.jwt_issuer,
        audience=cfg.jwt_audience,
        access_ttl_seconds=cfg.access_token_ttl_seconds,
        refresh_ttl_seconds=cfg.refresh_token_ttl_seconds,
        clock=clock,
    )


def build_token_verifier(cfg: Settings, clock: Clock = system_clock) -> TokenVerifier:
    return TokenVerifier(
        cfg.effective_jwt_secret_key,
        algorithm=cfg.jwt_algorithm,
        issuer=cfg.jwt_issuer,
        audience=cfg.jwt_audience,
        clock=clock,
    )
