"""
Async database engine and session handling for users, subscriptions and usage rows
"""
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from typing import AsyncGenerator, Optional

from config.settings import settings, IS_PRODUCTION

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./colorbook.db"

# Driverless URLs as issued by hosting providers -> async driver
ASYNC_DRIVERS = {
    "postgres://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


def resolve_database_url(url: Optional[str], production: bool = False) -> str:
    """
    Return the async SQLAlchemy URL to connect to.

    Raises:
        RuntimeError: In production, when DATABASE_URL is unset or points at SQLite
    """
    if production:
        if not url:
            raise RuntimeError("DATABASE_URL must be set in production. SQLite is not allowed in production.")
        if "sqlite" in url.lower():
            raise RuntimeError("SQLite is forbidden in production. Use a PostgreSQL DATABASE_URL.")

    url = url or DEFAULT_DATABASE_URL
    for prefix, async_prefix in ASYNC_DRIVERS.items():
        if url.startswith(prefix):
            return async_prefix + url[len(prefix):]
    return url


DATABASE_URL = resolve_database_url(settings.database_url, IS_PRODUCTION)

engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    future=True,
)

Base = declarative_base()

# expire_on_commit=False: the auth step commits last_login_at mid-request and keeps using the user
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def init_db():
    """Create the users, projects, stories, images and exports tables if missing"""
    async with engine.begin() as conn:
        import database_models  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session, committed when the handler returns and rolled back on error.

    Pipeline steps receive it through RequestContext.db:
        @router.get("/projects")
        async def list_projects(ctx: RequestContext = Depends(guard(authenticate_token))):
            await ctx.db.execute(...)
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
