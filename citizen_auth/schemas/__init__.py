# Ceylon Smart Citizen Auth Pydantic Schemas
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

__all__ = [
    "BlacklistStatsResponse",
    "ChangePasswordRequest",
    "CleanupResponse",
    "DeactivateRequest",
    "ForgotPasswordRequest",
    "LoginRequest",
    "MessageResponse",
    "PasswordResetResponse",
    "RefreshRequest",
    "RegisterRequest",
    "RegisterResponse",
    "ResetPasswordRequest",
    "ResetRequestedResponse",
    "SessionIdentity",
    "SessionStatusResponse",
    "TokenResponse",
    "UpdateProfileRequest",
    "UserResponse",
]
