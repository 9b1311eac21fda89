"""
Pytest configuration and core fixtures.

Every test gets a fresh in-memory SQLite database (aiosqlite + StaticPool)
with all tables created. The API client hands each request its own session
from the same engine, so data committed by fixtures is visible to the app
and data committed by the app is visible to assertions.
"""

import os
from dataclasses import dataclass, field
from typing import AsyncGenerator
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

TEST_PASSWORD = "Str0ng!Passw0rd"


def pytest_configure(config):
    """Configure the environment before the application is imported."""
    os.environ["ENVIRONMENT"] = "test"
    os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
    os.environ["DEBUG"] = "false"
    os.environ["SENTRY_DSN"] = ""
    os.environ["ENABLE_SCHEDULER"] = "false"
    os.environ["RATE_LIMIT_BACKEND"] = "memory"
    os.environ["STORE_ACCESS_TOKEN_IN_COOKIE"] = "false"
    os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-with-enough-length-0123"


@dataclass
class SentEmail:
    email: str
    code: str
    name: str | None
    purpose: object


@dataclass
class FakeEmailService:
    """Records OTP emails instead of sending them."""

    sent: list[SentEmail] = field(default_factory=list)
    fail: bool = False

    async def send_otp_email(self, email, code, name=None, purpose=None) -> bool:
        if self.fail:
            return False
        self.sent.append(SentEmail(email=email, code=code, name=name, purpose=purpose))
        return True

    def last_code(self, email: str | None = None) -> str:
        for message in reversed(self.sent):
            if email is None or message.email == email:
                return message.code
        raise AssertionError(f"No code was sent to {email}")


@pytest.fixture
async def engine():
    from sgms.core.db import Base
    import sgms.core.db.models  # noqa: F401

    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine,
        autoflush=False,
        expire_on_commit=False,
        autobegin=True,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def email_service() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture
def otp_service(email_service):
    from sgms.core.services.otp import OTPService

    return OTPService(email_service=email_service)


@pytest.fixture
def token_service():
    from sgms.core.services.token import TokenService

    return TokenService()


@pytest.fixture
def auth_service(token_service, otp_service):
    from sgms.core.services.auth import AuthService

    return AuthService(token_service=token_service, otp_service=otp_service)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    from sgms.core.services.rate_limit import memory_backend

    memory_backend.clear()
    yield
    memory_backend.clear()


@pytest.fixture
def app():
    """Create FastAPI application for testing."""
    from sgms.main import app as fastapi_app

    return fastapi_app


@pytest.fixture
async def client(
    app, session_factory, email_service
) -> AsyncGenerator[AsyncClient, None]:
    """
    Provide an async HTTP client against the app.

    Each request gets its own session on the test engine, and OTP emails go
    to ``email_service``.
    """
    from sgms.core.dependencies.db import get_async_session
    from sgms.core.dependencies.services import get_email_service

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_email_service] = lambda: email_service

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


# ============================================================================
# Users
# ============================================================================


async def create_user(
    session: AsyncSession,
    email: str = "member@example.com",
    username: str = "member",
    password: str = TEST_PASSWORD,
    role=None,
    status=None,
    **extra,
):
    """Insert and commit a user with a real bcrypt hash."""
    from sgms.core.db.crud import user_db
    from sgms.core.enums import UserRole, UserStatus
    from sgms.core.utils import hash_password

    return await user_db.create(
        session,
        {
            "email": email,
            "username": username,
            "password_hash": hash_password(password),
            "role": role or UserRole.CUSTOMER,
            "status": status or UserStatus.ACTIVE,
            "email_verified": True,
            **extra,
        },
        commit_self=True,
    )


@pytest.fixture
async def test_user(db_session):
    return await create_user(db_session, first_name="Test", last_name="Member")


@pytest.fixture
async def manager_user(db_session):
    from sgms.core.enums import UserRole

    return await create_user(
        db_session, email="manager@example.com", username="manager", role=UserRole.MANAGER
    )


@pytest.fixture
async def admin_user(db_session):
    from sgms.core.enums import UserRole

    return await create_user(
        db_session, email="admin@example.com", username="admin", role=UserRole.ADMIN
    )


def auth_headers(user) -> dict[str, str]:
    """Bearer header for a freshly issued access token."""
    from sgms.core.services.token import TokenService

    pair = TokenService().issue(user.id, user.email, user.role)
    return {"Authorization": f"Bearer {pair.access_token}"}


@pytest.fixture
def mock_cloudinary():
    """Replace the image host so avatar tests never hit the network."""
    from unittest.mock import AsyncMock

    with patch(
        "sgms.core.services.cloudinary.CloudinaryService.upload_file",
        new_callable=AsyncMock,
        return_value=("https://cdn.example.com/avatars/new.png", "sgms_avatars/new"),
    ) as upload, patch(
        "sgms.core.services.cloudinary.CloudinaryService.delete_file",
        new_callable=AsyncMock,
        return_value=None,
    ) as delete:
        yield {"upload": upload, "delete": delete}


@pytest.fixture
def make_user(db_session):
    """Factory fixture: ``await make_user(email=..., username=..., role=...)``."""

    async def _make_user(**kwargs):
        return await create_user(db_session, **kwargs)

    return _make_user


@pytest.fixture
def headers_for():
    """Factory fixture returning a bearer header for a user."""
    return auth_headers
