"""
Test fixtures and configuration.
"""
import os
from collections.abc import AsyncGenerator, Callable

os.environ.setdefault("HUBSPOT_CLIENT_ID", "hubspot-client")
os.environ.setdefault("HUBSPOT_CLIENT_SECRET", "hubspot-secret")
os.environ.setdefault("BIGIN_CLIENT_ID", "bigin-client")
os.environ.setdefault("BIGIN_CLIENT_SECRET", "bigin-secret")
os.environ.setdefault("TRELLO_API_KEY", "trello-key")
os.environ.setdefault("TRELLO_API_SECRET", "trello-secret")
os.environ.setdefault("MICROSOFT_CLIENT_ID", "microsoft-client")
os.environ.setdefault("MICROSOFT_CLIENT_SECRET", "microsoft-secret")

import httpx
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.main import app
from app.database import Base, get_db
from app.services.integrations import IntegrationToken

# Test database
TEST_DATABASE_URL = "sqlite+aiosqlite://"

USER_ID = "user-123"

Handler = Callable[[httpx.Request], httpx.Response]


@pytest_asyncio.fixture(scope="function")
async def db() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database override."""
    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def user_headers() -> dict:
    """Identity headers the upstream gateway would set."""
    return {"X-User-Id": USER_ID}


@pytest.fixture
def token() -> IntegrationToken:
    return IntegrationToken(access_token="access-abc", refresh_token="refresh-xyz")


@pytest.fixture
def mock_http() -> Callable[[Handler], httpx.AsyncClient]:
    """Build an httpx client whose requests are answered by ``handler``."""
    def factory(handler: Handler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory
