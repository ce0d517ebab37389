import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    Run a block in one transaction: commit on success, roll back on error.

    Broadcasts are only sent after this block exits, so subscribers never
    hear about a row that was rolled back.
    """
    try:
        async with session.begin():
            yield session
    except Exception:
        logger.debug("Transaction rolled back", exc_info=True)
        raise
