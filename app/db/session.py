import asyncio

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker
from app.core.config import settings
from app.core.errors import StoreUnavailable
from app.core.logging import get_logger
from app.db.models import Base

logger = get_logger(__name__)


def make_engine(db_url: str) -> AsyncEngine:
    return create_async_engine(db_url, echo=False, pool_pre_ping=True)


async def init_models(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def bounded(op: str, coro, timeout: float):
    """Await a store call; timeouts and database errors become StoreUnavailable."""
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.error("store_timeout", op=op, timeout=timeout)
        raise StoreUnavailable(f"{op}: timed out") from e
    except SQLAlchemyError as e:
        logger.error("store_error", op=op, error=str(e))
        raise StoreUnavailable(f"{op}: {e.__class__.__name__}") from e


engine = make_engine(settings.db_url)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
