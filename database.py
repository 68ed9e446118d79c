from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from config.settings import settings, IS_PRODUCTION

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./sql_app.db"

# Production runs on PostgreSQL only
if IS_PRODUCTION:
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL must be set in production. SQLite is not allowed in production.")
    if "sqlite" in settings.database_url.lower():
        raise RuntimeError("SQLite is forbidden in production. Use a PostgreSQL DATABASE_URL.")


def to_async_url(url: str) -> str:
    """Render hands out plain postgres URLs; route them through the asyncpg driver."""
    for prefix in ("postgresql://", "postgres://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


def build_engine(url: str, **kwargs) -> AsyncEngine:
    return create_async_engine(to_async_url(url), echo=False, **kwargs)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    # Objects stay readable after commit
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


engine = build_engine(settings.database_url or DEFAULT_DATABASE_URL)

Base = declarative_base()

AsyncSessionLocal = make_session_factory(engine)


async def init_db():
    """
    Create the users, subscriptions and coupons tables if they do not exist.
    Called on application startup.
    """
    async with engine.begin() as conn:
        from database_models import User, Subscription, Coupon  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session dependency.

    Billing services commit their own unit of work; the commit here only
    flushes whatever a route left pending.
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
