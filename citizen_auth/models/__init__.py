# Ceylon Smart Citizen Auth Models
from citizen_auth.models.base import BaseModel
from citizen_auth.models.blacklisted_token import BlacklistedToken
from citizen_auth.models.user import User

__all__ = [
    "BaseModel",
    "BlacklistedToken",
    "User",
]
