"""Authentication API endpoints."""

import logging
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from citizen_auth.core import get_db, settings
from citizen_auth.schemas.auth import (
    BlacklistStatsResponse,
    ChangePasswordRequest,
    CleanupResponse,
    DeactivateRequest,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    PasswordResetResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    ResetRequestedResponse,
    SessionIdentity,
    SessionStatusResponse,
    TokenResponse,
    UpdateProfileRequest,
    UserResponse,
)
from citizen_auth.services.accounts import AccountService, RegistrationData
from citizen_auth.services.errors import (
    InvalidCredentialsError,
    InvalidResetTokenError,
    TokenError,
    UserAlreadyExistsError,
    UserInactiveError,
    UserNotFoundError,
    WeakPasswordError,
    WrongTokenTypeError,
)
from citizen_auth.services.revocation import RevocationRegistry
from citizen_auth.services.session import (
    AuthenticatedSession,
    AuthenticationRejected,
    SessionAuthenticator,
)
from citizen_auth.services.tokens import (
    TokenIssuer,
    TokenPair,
    TokenVerifier,
    build_token_issuer,
    build_token_verifier,
)
from citizen_auth.services.users import UserStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _error(
    status_code: int, code: str, message: str, *, bearer: bool = False, **extra: Any
) -> HTTPException:
    """Build an HTTPException with a ``{code, message}`` detail body."""
    detail: dict[str, Any] = {"code": code, "message": message, **extra}
    headers = {"WWW-Authenticate": "Bearer"} if bearer else None
    return HTTPException(status_code=status_code, detail=detail, headers=headers)


def _token_response(pair: TokenPair) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        token_type=pair.token_type,
        expires_in=pair.expires_in,
    )


# --- Dependencies ---


def get_token_issuer() -> TokenIssuer:
    """Dependency to get the token issuer."""
    return build_token_issuer(settings)


def get_token_verifier() -> TokenVerifier:
    """Dependency to get the token verifier."""
    return build_token_verifier(settings)


def get_revocation_registry(db: AsyncSession = Depends(get_db)) -> RevocationRegistry:
    return RevocationRegistry(db)


def get_authenticator(
    db: AsyncSession = Depends(get_db),
    verifier: TokenVerifier = Depends(get_token_verifier),
    registry: RevocationRegistry = Depends(get_revocation_registry),
) -> SessionAuthenticator:
    return SessionAuthenticator(verifier, registry, UserStore(db))


def get_account_service(
    db: AsyncSession = Depends(get_db),
    issuer: TokenIssuer = Depends(get_token_issuer),
    verifier: TokenVerifier = Depends(get_token_verifier),
    registry: RevocationRegistry = Depends(get_revocation_registry),
) -> AccountService:
    """Dependency to get the account service."""
    return AccountService(db, issuer, verifier, settings, registry=registry)


async def get_current_session(
    request: Request,
    authenticator: SessionAuthenticator = Depends(get_authenticator),
) -> AuthenticatedSession:
    """Dependency that requires an authenticated access token."""
    try:
        return await authenticator.authenticate(request.headers.get("Authorization"))
    except AuthenticationRejected as e:
        raise _error(
            status.HTTP_401_UNAUTHORIZED, e.reason.value, e.message, bearer=True
        ) from e


async def get_optional_session(
    request: Request,
    authenticator: SessionAuthenticator = Depends(get_authenticator),
) -> AuthenticatedSession | None:
    """Dependency for endpoints that also serve anonymous callers."""
    return await authenticator.authenticate_optional(request.headers.get("Authorization"))


def require_role(*roles: str) -> Callable[..., Awaitable[AuthenticatedSession]]:
    """Dependency factory restricting an endpoint to the given roles."""

    async def _check_role(
        session: AuthenticatedSession = Depends(get_current_session),
    ) -> AuthenticatedSession:
        if session.identity.role not in roles:
            logger.warning(
                f"Insufficient permissions for user {session.user_id}: "
                f"role {session.identity.role!r} not in {list(roles)}"
            )
            raise _error(
                status.HTTP_403_FORBIDDEN,
                "INSUFFICIENT_PERMISSIONS",
                "Insufficient permissions",
            )
        return session

    return _check_role


# --- Registration and login ---


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register(
    request: RegisterRequest,
    accounts: AccountService = Depends(get_account_service),
) -> RegisterResponse:
    """Register a citizen account and return its first token pair.

    Returns 409 Conflict if the email or NIC number is already registered.
    """
    try:
        user, pair = await accounts.register(
            RegistrationData(
                email=request.email,
                password=request.password,
                first_name=request.first_name,
                last_name=request.last_name,
                nic_number=request.nic_number,
                phone_number=request.phone_number,
            )
        )
    except WeakPasswordError as e:
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            "WEAK_PASSWORD",
            str(e),
            suggestions=e.suggestions,
        ) from e
    except UserAlreadyExistsError as e:
        code = "NIC_EXISTS" if e.field == "nicNumber" else "EMAIL_EXISTS"
        raise _error(status.HTTP_409_CONFLICT, code, str(e)) from e

    return RegisterResponse(
        user=UserResponse.model_validate(user),
        tokens=_token_response(pair),
    )


@router.post("/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    accounts: AccountService = Depends(get_account_service),
) -> TokenResponse:
    """Authenticate with email and password and get a token pair."""
    try:
        _, pair = await accounts.login(request.email, request.password)
    except InvalidCredentialsError as e:
        raise _error(
            status.HTTP_401_UNAUTHORIZED, "INVALID_CREDENTIALS", "Invalid email or password"
        ) from e
    except UserInactiveError as e:
        raise _error(
            status.HTTP_401_UNAUTHORIZED, "USER_DEACTIVATED", "Account has been deactivated"
        ) from e
    return _token_response(pair)


@router.post("/refresh-token", response_model=TokenResponse)
@router.post("/refresh", response_model=TokenResponse, include_in_schema=False)
async def refresh_tokens(
    request: RefreshRequest,
    accounts: AccountService = Depends(get_account_service),
) -> TokenResponse:
    """Exchange a refresh token for a new token pair.

    The presented refresh token is not rotated out and stays valid until
    it expires.
    """
    try:
        pair = await accounts.refresh(request.refresh_token)
    except WrongTokenTypeError as e:
        raise _error(
            status.HTTP_401_UNAUTHORIZED, "INVALID_TOKEN_TYPE", "Invalid token type"
        ) from e
    except TokenError as e:
        raise _error(
            status.HTTP_401_UNAUTHORIZED, "INVALID_REFRESH_TOKEN", "Invalid refresh token"
        ) from e
    except (UserNotFoundError, UserInactiveError) as e:
        raise _error(
            status.HTTP_401_UNAUTHORIZED, "USER_INVALID", "User not found or inactive"
        ) from e
    return _token_response(pair)


# --- Password reset ---


@router.post("/forgot-password", response_model=ResetRequestedResponse)
async def forgot_password(
    request: ForgotPasswordRequest,
    accounts: AccountService = Depends(get_account_service),
) -> ResetRequestedResponse:
    """Start a password reset for the account behind an email, phone number or NIC.

    The response is the same whether or not an account matched.
    """
    # TODO: deliver the returned token through the notification service's email/SMS channel
    await accounts.request_password_reset(request.identifier)
    return ResetRequestedResponse()


@router.post("/reset-password", response_model=PasswordResetResponse)
async def reset_password(
    request: ResetPasswordRequest,
    accounts: AccountService = Depends(get_account_service),
) -> PasswordResetResponse:
    """Set a new password with a reset token. Every existing session is logged out."""
    if request.new_password != request.confirm_password:
        raise _error(status.HTTP_400_BAD_REQUEST, "PASSWORD_MISMATCH", "Passwords do not match")
    try:
        await accounts.reset_password(request.token, request.new_password)
    except WeakPasswordError as e:
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            "WEAK_PASSWORD",
            str(e),
            suggestions=e.suggestions,
        ) from e
    except InvalidResetTokenError as e:
        raise _error(
            status.HTTP_400_BAD_REQUEST, "INVALID_TOKEN", "Invalid or expired reset token"
        ) from e
    return PasswordResetResponse(
        message="Password reset successfully", logged_out_all_sessions=True
    )


# --- Session ---


@router.get("/profile", response_model=UserResponse)
@router.get("/me", response_model=UserResponse, include_in_schema=False)
async def get_profile(
    session: AuthenticatedSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Get the stored profile of the current user."""
    user = await UserStore(db).find_by_id(session.user_id)
    if user is None:
        raise _error(status.HTTP_404_NOT_FOUND, "USER_NOT_FOUND", "User not found")
    return UserResponse.model_validate(user)


@router.put("/profile", response_model=UserResponse)
async def update_profile(
    request: UpdateProfileRequest,
    session: AuthenticatedSession = Depends(get_current_session),
    accounts: AccountService = Depends(get_account_service),
) -> UserResponse:
    """Update the current user's name or phone number."""
    changes = request.changes()
    if not changes:
        raise _error(status.HTTP_400_BAD_REQUEST, "NO_UPDATES", "No valid fields to update")
    try:
        user = await accounts.update_profile(session.user_id, changes)
    except UserNotFoundError as e:
        raise _error(status.HTTP_404_NOT_FOUND, "USER_NOT_FOUND", "User not found") from e
    return UserResponse.model_validate(user)


@router.get("/session", response_model=SessionStatusResponse)
async def get_session_status(
    session: AuthenticatedSession | None = Depends(get_optional_session),
) -> SessionStatusResponse:
    """Report whether the caller is authenticated. Never rejects."""
    if session is None:
        return SessionStatusResponse(authenticated=False)
    return SessionStatusResponse(
        authenticated=True,
        user=SessionIdentity.model_validate(session.identity.to_dict()),
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    session: AuthenticatedSession = Depends(get_current_session),
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Log out the current session.

    The presented access token is blacklisted until its natural expiry.
    """
    await accounts.logout(session)
    return MessageResponse(message="Logged out successfully")


@router.post("/global-logout", response_model=MessageResponse)
@router.post("/logout-all-sessions", response_model=MessageResponse, include_in_schema=False)
async def logout_all_sessions(
    session: AuthenticatedSession = Depends(get_current_session),
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Invalidate every token issued to the current user, on every device."""
    await accounts.logout_everywhere(session.user_id)
    return MessageResponse(message="Logged out from all sessions successfully")


# --- Account management ---


@router.put("/change-password", response_model=MessageResponse)
async def change_password(
    request: ChangePasswordRequest,
    session: AuthenticatedSession = Depends(get_current_session),
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Change the current user's password.

    Invalidates all existing tokens; the user must log in again.
    """
    try:
        await accounts.change_password(
            session.user_id, request.current_password, request.new_password
        )
    except InvalidCredentialsError as e:
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            "INVALID_CURRENT_PASSWORD",
            "Current password is incorrect",
        ) from e
    except WeakPasswordError as e:
        raise _error(
            status.HTTP_400_BAD_REQUEST,
            "WEAK_PASSWORD",
            str(e),
            suggestions=e.suggestions,
        ) from e
    except UserNotFoundError as e:
        raise _error(status.HTTP_404_NOT_FOUND, "USER_NOT_FOUND", "User not found") from e
    return MessageResponse(message="Password changed successfully. Please log in again.")


@router.post("/deactivate", response_model=MessageResponse)
async def deactivate_account(
    request: DeactivateRequest,
    session: AuthenticatedSession = Depends(get_current_session),
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Deactivate the current user's account after confirming the password."""
    try:
        await accounts.deactivate(session.user_id, request.password)
    except InvalidCredentialsError as e:
        raise _error(status.HTTP_400_BAD_REQUEST, "INVALID_PASSWORD", "Password is incorrect") from e
    except UserNotFoundError as e:
        raise _error(status.HTTP_404_NOT_FOUND, "USER_NOT_FOUND", "User not found") from e
    return MessageResponse(message="Account deactivated successfully")


# --- Operations (admin only) ---


@router.get("/stats/blacklist", response_model=BlacklistStatsResponse)
async def get_blacklist_stats(
    _: AuthenticatedSession = Depends(require_role("admin")),
    registry: RevocationRegistry = Depends(get_revocation_registry),
) -> BlacklistStatsResponse:
    """Counts of live blacklist entries and recent logouts."""
    return BlacklistStatsResponse(**await registry.stats())


@router.post("/users/{user_id}/deactivate", response_model=MessageResponse)
async def deactivate_user(
    user_id: UUID,
    session: AuthenticatedSession = Depends(require_role("admin")),
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Deactivate another account and invalidate every token it holds."""
    try:
        user = await accounts.admin_deactivate(user_id)
    except UserNotFoundError as e:
        raise _error(status.HTTP_404_NOT_FOUND, "USER_NOT_FOUND", "User not found") from e
    logger.info(f"User {user.email} deactivated by {session.identity.email}")
    return MessageResponse(message="Account deactivated successfully")


@router.post("/maintenance/cleanup", response_model=CleanupResponse)
async def cleanup_blacklist(
    session: AuthenticatedSession = Depends(require_role("admin")),
    registry: RevocationRegistry = Depends(get_revocation_registry),
) -> CleanupResponse:
    """Remove blacklist entries whose tokens have expired anyway."""
    removed = await registry.cleanup_expired()
    logger.info(f"Blacklist cleanup triggered by {session.identity.email}: {removed} removed")
    return CleanupResponse(removed=removed, message=f"Removed {removed} expired blacklist entries")
