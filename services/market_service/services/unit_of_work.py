"""Transaction scope for multi-step writes."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from libs.common.logging import get_logger
from services.market_service.errors import InfrastructureError, MarketError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit everything done on ``db`` inside the block, or nothing.

    Business errors roll back and propagate unchanged. Storage errors roll
    back and surface as a retryable ``InfrastructureError``.
    """
    try:
        yield db
        await db.commit()
    except MarketError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Transaction rolled back after storage error: %s", exc)
        raise InfrastructureError(
            "The operation could not be completed; please retry"
        ) from exc
    except BaseException:
        await db.rollback()
        raise
