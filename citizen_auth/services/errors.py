"""Authentication error hierarchy shared by the service layer."""


class AuthError(Exception):
    """Base authentication error."""

    pass


class InvalidCredentialsError(AuthError):
    """Invalid email or password."""

    pass


class UserInactiveError(AuthError):
    """User account is deactivated."""

    pass


class UserNotFoundError(AuthError):
    """No account exists for the given identifier."""

    pass


class UserAlreadyExistsError(AuthError):
    """Email or NIC number is already registered."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class WeakPasswordError(AuthError):
    """Password does not satisfy the strength policy."""

    def __init__(self, message: str, suggestions: list[str] | None = None, score: int = 0):
        super().__init__(message)
        self.suggestions = suggestions or []
        self.score = score


class TokenError(AuthError):
    """JWT token error."""

    pass


class TokenExpiredError(TokenError):
    """JWT token has expired."""

    pass


class MalformedTokenError(TokenError):
    """Token is not a well-formed three-segment JWT."""

    pass


class UnverifiableTokenError(TokenError):
    """Signature, issuer, audience or required claims do not check out."""

    pass


class WrongTokenTypeError(TokenError):
    """An access token was used where a refresh token is required, or vice versa."""

    pass


class RevocationStoreError(AuthError):
    """The revocation backing store could not be read or written."""

    pass


class InvalidResetTokenError(AuthError):
    """Password reset token is unknown, already used or expired."""

    pass
