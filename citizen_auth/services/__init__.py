# Ceylon Smart Citizen Auth Services
from citizen_auth.services.accounts import AccountService, RegistrationData
from citizen_auth.services.revocation import RevocationRegistry
from citizen_auth.services.session import (
    AuthenticatedSession,
    AuthenticationRejected,
    RejectionReason,
    SessionAuthenticator,
)
from citizen_auth.services.tokens import TokenIssuer, TokenPair, TokenVerifier
from citizen_auth.services.users import IdentitySnapshot, UserStore

__all__ = [
    "AccountService",
    "AuthenticatedSession",
    "AuthenticationRejected",
    "IdentitySnapshot",
    "RegistrationData",
    "RejectionReason",
    "RevocationRegistry",
    "SessionAuthenticator",
    "TokenIssuer",
    "TokenPair",
    "TokenVerifier",
    "UserStore",
]
