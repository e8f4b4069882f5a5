"""
Pytest configuration and fixtures for testing
"""
import os

# Settings are read at import time; the app refuses to build without a secret
os.environ.setdefault("JWT_SECRET", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from auth_utils import TokenConfig, TokenService, hash_password
from config.settings import Settings
from crud.user import UserRepository
from database import Base, get_db

# In-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_SECRET = "test-secret-key"
WEBHOOK_SECRET = "whsec_test_secret"


def make_settings(**overrides) -> Settings:
    values = {
        "JWT_SECRET": TEST_SECRET,
        "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "DATABASE_URL": TEST_DATABASE_URL,
        "RATE_LIMIT_POINTS": 1000,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def token_service(settings):
    return TokenService(TokenConfig.from_settings(settings))


@pytest.fixture
async def session_factory():
    """
    Fresh in-memory database per test.

    StaticPool keeps a single connection so every session sees the same database.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        # Import models to ensure they're registered with Base
        import database_models  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_db(session_factory):
    """Session for arranging and inspecting data directly"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def app(settings, session_factory):
    """Application wired to the test database"""
    from main import create_app

    application = create_app(settings)

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    application.dependency_overrides[get_db] = override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    """Async HTTP client talking to the app in-process"""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as async_client:
        yield async_client


@pytest.fixture
def make_user(test_db):
    """Factory creating committed users with a given subscription"""

    async def _make_user(email="user@example.com", tier="free", status="active", expires_at=None, **extra):
        user_repo = UserRepository(test_db)
        user = await user_repo.create_user({
            "email": email,
            "password_hash": hash_password("password123"),
            "subscription_tier": tier,
            "subscription_status": status,
            "subscription_expires_at": expires_at,
        })
        if extra:
            await user_repo.update_user(user, extra)
        await test_db.commit()
        return user

    return _make_user


@pytest.fixture
def fetch_user(session_factory):
    """Read a user back through a fresh session, bypassing any cached state"""

    async def _fetch_user(user_id):
        async with session_factory() as session:
            return await UserRepository(session).get_user_by_id(user_id)

    return _fetch_user


@pytest.fixture
def auth_headers(token_service):
    def _auth_headers(user_id):
        return {"Authorization": f"Bearer {token_service.issue_access_token(user_id)}"}

    return _auth_headers
