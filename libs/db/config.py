from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from libs.common.config import get_settings

settings = get_settings()


def engine_options(database_url: str) -> dict[str, Any]:
    """Engine keyword arguments appropriate for the given backend."""
    if database_url.startswith("sqlite"):
        # Writers wait on the database lock instead of failing immediately
        return {"connect_args": {"timeout": settings.DB_POOL_TIMEOUT}}
    return {
        "pool_pre_ping": True,  # Test connections before using
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
    }


def build_engine(database_url: str, **overrides: Any) -> AsyncEngine:
    options = engine_options(database_url)
    options.update(overrides)
    return create_async_engine(database_url, echo=settings.DB_ECHO, **options)


def build_session_factory(bind) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


# Create async engine
engine = build_engine(settings.DATABASE_URL)

# Create async session factory
AsyncSessionLocal = build_session_factory(engine)
