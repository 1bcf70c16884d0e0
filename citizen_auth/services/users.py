"""Credential store: user lookups and account mutations."""

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from citizen_auth.models.user import User
from citizen_auth.services.errors import UserAlreadyExistsError

logger = logging.getLogger(__name__)

_PHONE_PATTERN = re.compile(r"^\+?[0-9\s\-()]+$")

PROFILE_FIELDS = ("first_name", "last_name", "phone_number")


@dataclass(frozen=True)
class IdentitySnapshot:
    """The identity a token is bound to.

    Issued into access tokens and handed back to request handlers by the
    session authenticator; it is a copy taken at issue time, not a live row.
    """

    id: UUID
    email: str
    role: str = "citizen"
    first_name: str | None = None
    last_name: str | None = None
    nic_number: str | None = None

    @classmethod
    def from_user(cls, user: User) -> "IdentitySnapshot":
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            first_name=user.first_name,
            last_name=user.last_name,
            nic_number=user.nic_number,
        )

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "IdentitySnapshot":
        return cls(
            id=UUID(str(claims["id"])),
            email=claims["email"],
            role=claims.get("role") or "citizen",
            first_name=claims.get("firstName"),
            last_name=claims.get("lastName"),
            nic_number=claims.get("nicNumber"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "email": self.email,
            "role": self.role,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "nicNumber": self.nic_number,
        }


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_nic(nic_number: str) -> str:
    return nic_number.strip().upper()


class UserStore:
    """Persisted user records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(self, user_id: UUID) -> User | None:
        result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> User | None:
        """Case-insensitive lookup by email."""
        result = await self.session.execute(
            select(User).where(func.lower(User.email) == normalize_email(email))
        )
        return result.scalar_one_or_none()

    async def find_by_nic(self, nic_number: str) -> User | None:
        result = await self.session.execute(
            select(User).where(User.nic_number == normalize_nic(nic_number))
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        *,
        email: str,
        password_hash: str,
        first_name: str,
        last_name: str,
        nic_number: str,
        phone_number: str | None = None,
        role: str = "citizen",
    ) -> User:
        """Insert a new user; email and NIC must both be unused."""
        if await self.find_by_email(email) is not None:
            raise UserAlreadyExistsError("email", "This email address is already registered")
        if await self.find_by_nic(nic_number) is not None:
            raise UserAlreadyExistsError("nicNumber", "This NIC number is already registered")

        user = User(
            email=normalize_email(email),
            password_hash=password_hash,
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            nic_number=normalize_nic(nic_number),
            phone_number=phone_number,
            role=role,
            is_active=True,
        )
        self.session.add(user)
        try:
            await self.session.flush()
        except IntegrityError as e:
            logger.info(f"Concurrent registration collided for {user.email}")
            raise UserAlreadyExistsError(
                "email", "This email address or NIC number is already registered"
            ) from e
        await self.session.refresh(user)
        return user

    async def set_password_hash(self, user_id: UUID, password_hash: str) -> None:
        await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(password_hash=password_hash, updated_at=datetime.now(UTC))
        )

    async def deactivate(self, user_id: UUID) -> None:
        await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(is_active=False, updated_at=datetime.now(UTC))
        )

    async def touch_last_login(self, user: User) -> None:
        user.last_login_at = datetime.now(UTC)
        await self.session.flush()

    async def find_by_phone(self, phone_number: str) -> User | None:
        result = await self.session.execute(
            select(User).where(User.phone_number == phone_number.replace(" ", ""))
        )
        return result.scalars().first()

    async def find_by_identifier(self, identifier: str) -> User | None:
        """Look a user up by email, phone number or NIC, whichever the identifier looks like."""
        identifier = identifier.strip()
        if "@" in identifier:
            return await self.find_by_email(identifier)
        # 12-digit NICs also look like phone numbers, so fall through to the NIC
        if _PHONE_PATTERN.match(identifier):
            user = await self.find_by_phone(identifier)
            if user is not None:
                return user
        return await self.find_by_nic(identifier)

    async def find_by_reset_token_hash(self, token_hash: str) -> User | None:
        result = await self.session.execute(select(User).where(User.reset_token_hash == token_hash))
        return result.scalar_one_or_none()

    async def set_reset_token(self, user_id: UUID, token_hash: str, expires_at: datetime) -> None:
        await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                reset_token_hash=token_hash,
                reset_token_expires_at=expires_at,
                updated_at=datetime.now(UTC),
            )
        )

    async def clear_reset_token(self, user_id: UUID) -> None:
        await self.session.execute(
            update(User)
            .where(User.id == user_id)
            .values(
                reset_token_hash=None,
                reset_token_expires_at=None,
                updated_at=datetime.now(UTC),
            )
        )

    async def update_profile(self, user: User, changes: dict[str, Any]) -> User:
        """Apply profile field changes; only names and phone number are editable."""
        for field in PROFILE_FIELDS:
            if field in changes:
                setattr(user, field, changes[field])
        await self.session.flush()
        await self.session.refresh(user)
        return user
