import socket
import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from tally.core.config import settings
from tally.models.base import Base
from tally.services.account_directory import InMemoryAccountDirectory
from tally.services.magic_link_store import InMemoryMagicLinkTokenStore

# Use separate test database
TEST_DATABASE_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)

# Test user ID (consistent across tests for predictable auth)
TEST_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105

TEST_FRONTEND_URL = "http://frontend.test"
TEST_APP_BASE_URL = "http://api.test"


def create_test_jwt(
    user_id: uuid.UUID = TEST_USER_ID,
    *,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed session JWT for test authentication.

    Args:
        user_id: User UUID to encode in the sub claim.
        secret: Signing secret (must match settings.auth_secret in tests).
        expires_delta: Time until expiration. Defaults to 1 hour; pass a
            negative delta for an expired token.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "aud": "tally",
        "iss": settings.auth_issuer,
        "exp": now + (expires_delta or timedelta(hours=1)),
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections on port 5432."""
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex(("127.0.0.1", 5432))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available."""
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            "PostgreSQL not available on port 5432. "
            "Start database with: docker compose up -d"
        )


class FakeGateway:
    """Notification gateway that records sends instead of emailing."""

    def __init__(self, *, fail_with: Exception | None = None) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail_with = fail_with

    async def send_magic_link(self, *, to_email: str, magic_link: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append((to_email, magic_link))

    @property
    def last_link(self) -> str:
        return self.sent[-1][1]


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine.

    Skips test if PostgreSQL is not available (e.g., Docker not running).
    """
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.exec_driver_sql("CREATE EXTENSION IF NOT EXISTS pgcrypto")
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest.fixture
def token_store() -> InMemoryMagicLinkTokenStore:
    return InMemoryMagicLinkTokenStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def accounts() -> InMemoryAccountDirectory:
    return InMemoryAccountDirectory()


@pytest.fixture
def api_settings():
    """Patch settings for API tests and restore them afterwards."""
    original = {
        "auth_secret": settings.auth_secret,
        "frontend_url": settings.frontend_url,
        "app_base_url": settings.app_base_url,
        "environment": settings.environment,
    }
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)
    settings.frontend_url = TEST_FRONTEND_URL
    settings.app_base_url = TEST_APP_BASE_URL

    yield settings

    for name, value in original.items():
        setattr(settings, name, value)


@pytest_asyncio.fixture
async def api_client(
    api_settings,  # noqa: ARG001 - patches settings for the test
    token_store,
    gateway,
    accounts,
) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated client with in-memory stores and a fake gateway.

    No database is touched: the token store, notification gateway and
    account directory are replaced through dependency overrides.
    """
    from tally.api.deps import (
        get_account_directory,
        get_notification_gateway,
        get_token_store,
    )
    from tally.core.rate_limiting import limiter
    from tally.main import app

    app.dependency_overrides[get_token_store] = lambda: token_store
    app.dependency_overrides[get_notification_gateway] = lambda: gateway
    app.dependency_overrides[get_account_directory] = lambda: accounts
    original_enabled = limiter.enabled
    limiter.enabled = False

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        follow_redirects=False,
    ) as ac:
        yield ac

    limiter.enabled = original_enabled
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def auth_client(
    api_client: AsyncClient,
    accounts: InMemoryAccountDirectory,
) -> AsyncClient:
    """api_client with a session cookie for a known account."""
    account = await accounts.sign_in("owner@example.com")
    api_client.cookies.set(settings.auth_cookie_name, create_test_jwt(account.id))
    return api_client
