"""Pytest configuration and fixtures for auth service tests.

Database Handling:
- If TEST_DATABASE_URL is set, tests run against that database (PostgreSQL)
- Otherwise an in-memory SQLite database (aiosqlite) is created per test
"""

import os
import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

SQLITE_MEMORY_URL = "sqlite+aiosqlite:///:memory:"

# Set test environment variables before importing app modules
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-that-is-long-enough-0123456789"
os.environ["DATABASE_URL"] = os.environ.get("TEST_DATABASE_URL") or SQLITE_MEMORY_URL
os.environ["CORS_ORIGINS"] = "http://localhost:3000"

# Test citizen credentials
TEST_USER_EMAIL = "a@b.com"
TEST_USER_PASSWORD = "Correct#123"
TEST_ADMIN_EMAIL = "admin@citizen.lk"
TEST_ADMIN_PASSWORD = "Admin#Pass123"


def next_nic() -> str:
    """Return a fresh 12-digit NIC number."""
    return f"{uuid.uuid4().int % 10**12:012d}"


class FixedClock:
    """Controllable clock for issuer/verifier/registry tests."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create a database engine with all tables for one test."""
    from citizen_auth.core.database import Base, enable_sqlite_savepoints
    from citizen_auth.models import BlacklistedToken, User  # noqa: F401

    url = os.environ["DATABASE_URL"]
    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        enable_sqlite_savepoints(engine)
    else:
        engine = create_async_engine(url, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database override."""
    from citizen_auth.core.database import get_db
    from citizen_auth.main import app

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # Clean up
    app.dependency_overrides.clear()


# --- Service Fixtures ---


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def token_issuer():
    from citizen_auth.core.config import settings
    from citizen_auth.services.tokens import build_token_issuer

    return build_token_issuer(settings)


@pytest.fixture
def token_verifier():
    from citizen_auth.core.config import settings
    from citizen_auth.services.tokens import build_token_verifier

    return build_token_verifier(settings)


# --- Test Factories ---


@pytest.fixture
def user_factory(db_session):
    """Factory for creating test users."""
    from citizen_auth.models.user import User
    from citizen_auth.services.passwords import hash_password
    from citizen_auth.services.users import UserStore

    async def _create_user(
        email: str = TEST_USER_EMAIL,
        password: str = TEST_USER_PASSWORD,
        first_name: str = "Nimal",
        last_name: str = "Perera",
        nic_number: str | None = None,
        role: str = "citizen",
    ) -> User:
        return await UserStore(db_session).create(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            nic_number=nic_number or next_nic(),
            role=role,
        )

    return _create_user


@pytest_asyncio.fixture
async def test_user(user_factory):
    """Create a test citizen."""
    return await user_factory()


@pytest_asyncio.fixture
async def admin_user(user_factory):
    """Create a test administrator."""
    return await user_factory(
        email=TEST_ADMIN_EMAIL,
        password=TEST_ADMIN_PASSWORD,
        first_name="Admin",
        last_name="User",
        role="admin",
    )


@pytest_asyncio.fixture
async def auth_tokens(test_user, token_issuer) -> dict[str, str]:
    """Token pair for the test citizen."""
    from citizen_auth.services.users import IdentitySnapshot

    pair = token_issuer.issue_token_pair(IdentitySnapshot.from_user(test_user))
    return {"access_token": pair.access_token, "refresh_token": pair.refresh_token}


@pytest_asyncio.fixture
async def auth_headers(auth_tokens) -> dict[str, str]:
    """Headers with JWT token for authenticated requests."""
    return {"Authorization": f"Bearer {auth_tokens['access_token']}"}


@pytest_asyncio.fixture
async def admin_headers(admin_user, token_issuer) -> dict[str, str]:
    """Headers with an administrator's access token."""
    from citizen_auth.services.users import IdentitySnapshot

    token = token_issuer.create_access_token(IdentitySnapshot.from_user(admin_user))
    return {"Authorization": f"Bearer {token}"}
