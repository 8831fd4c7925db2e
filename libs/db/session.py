from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from libs.db.config import AsyncSessionLocal


async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields an async database session.

    Each request gets its own session (and so its own connection); any
    transaction left open by a failed request is rolled back on close.
    """
    async with AsyncSessionLocal() as session:
        yield session
