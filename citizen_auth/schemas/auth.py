"""Pydantic schemas for authentication API.

Request and response bodies use camelCase keys on the wire.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class CamelModel(BaseModel):
    """Accepts and emits camelCase aliases, also accepts field names."""

    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(CamelModel):
    """Request for citizen registration."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    first_name: str = Field(..., alias="firstName", min_length=1, max_length=100)
    last_name: str = Field(..., alias="lastName", min_length=1, max_length=100)
    nic_number: str = Field(..., alias="nicNumber", min_length=10, max_length=12)
    phone_number: str | None = Field(None, alias="phoneNumber", max_length=20)


class LoginRequest(BaseModel):
    """Request for login."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class TokenResponse(CamelModel):
    """Access/refresh token pair."""

    access_token: str = Field(..., alias="accessToken")
    refresh_token: str = Field(..., alias="refreshToken")
    token_type: str = Field("Bearer", alias="tokenType")
    expires_in: int = Field(..., alias="expiresIn", description="Access token expiry in seconds")


class RefreshRequest(CamelModel):
    """Request for token refresh."""

    refresh_token: str = Field(..., alias="refreshToken", min_length=1)


class ChangePasswordRequest(CamelModel):
    """Request for password change."""

    current_password: str = Field(..., alias="currentPassword", min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=8, max_length=128)


class DeactivateRequest(BaseModel):
    """Request for account deactivation; the password confirms intent."""

    password: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    """Request for a password reset; the identifier is an email, phone number or NIC."""

    identifier: str = Field(..., min_length=1, max_length=255)


class ResetPasswordRequest(CamelModel):
    """Request to set a new password with a reset token."""

    token: str = Field(..., min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=8, max_length=128)
    confirm_password: str = Field(..., alias="confirmPassword", min_length=1)


class UpdateProfileRequest(CamelModel):
    """Partial profile update. Omitted fields are left unchanged."""

    first_name: str | None = Field(None, alias="firstName", min_length=1, max_length=100)
    last_name: str | None = Field(None, alias="lastName", min_length=1, max_length=100)
    phone_number: str | None = Field(None, alias="phoneNumber", max_length=20)

    def changes(self) -> dict[str, str | None]:
        """Fields the caller sent; names cannot be cleared, the phone number can."""
        return {
            name: value
            for name, value in self.model_dump(exclude_unset=True).items()
            if value is not None or name == "phone_number"
        }


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str


class ResetRequestedResponse(BaseModel):
    """Identical whether or not an account matched the identifier."""

    code: str = "RESET_INSTRUCTIONS_SENT"
    message: str = "Password reset instructions have been sent"


class PasswordResetResponse(CamelModel):
    """Result of a completed password reset."""

    message: str
    logged_out_all_sessions: bool = Field(..., alias="loggedOutAllSessions")


class UserResponse(CamelModel):
    """Stored user profile."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    email: str
    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    nic_number: str = Field(..., alias="nicNumber")
    phone_number: str | None = Field(None, alias="phoneNumber")
    role: str
    is_active: bool = Field(..., alias="isActive")
    last_login_at: datetime | None = Field(None, alias="lastLoginAt")
    created_at: datetime = Field(..., alias="createdAt")


class RegisterResponse(BaseModel):
    """Response after successful registration."""

    user: UserResponse
    tokens: TokenResponse


class SessionIdentity(CamelModel):
    """Identity snapshot as carried in the access token."""

    id: UUID
    email: str
    role: str
    first_name: str | None = Field(None, alias="firstName")
    last_name: str | None = Field(None, alias="lastName")
    nic_number: str | None = Field(None, alias="nicNumber")


class SessionStatusResponse(BaseModel):
    """Result of optional authentication."""

    authenticated: bool
    user: SessionIdentity | None = None


class BlacklistStatsResponse(CamelModel):
    """Blacklist counters for operators."""

    total_blacklisted_tokens: int = Field(..., alias="totalBlacklistedTokens")
    tokens_by_reason: dict[str, int] = Field(default_factory=dict, alias="tokensByReason")
    recent_logouts_24h: int = Field(..., alias="recentLogouts24h")
    last_updated: datetime = Field(..., alias="lastUpdated")


class CleanupResponse(BaseModel):
    """Result of a blacklist cleanup run."""

    removed: int
    message: str
