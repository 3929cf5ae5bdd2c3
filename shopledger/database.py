# shopledger/database.py

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from shopledger.core.config import Settings
from shopledger.core.exceptions import BackendUnavailableError, DuplicateKeyError, ShopLedgerError

logger = logging.getLogger(__name__)

Base = declarative_base()

# Line items and party blocks are stored as documents on the transaction row
JSONType = JSON().with_variant(JSONB(), "postgresql")


def create_engine_from_settings(settings: Settings) -> Optional[AsyncEngine]:
    """Build the async engine, or None when no DATABASE_URL is configured."""
    database_url = settings.async_database_url
    if not database_url:
        return None

    options = {"echo": False, "future": True}
    if not database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_timeout=settings.DB_POOL_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE,
            pool_pre_ping=True,
        )
    return create_async_engine(database_url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@asynccontextmanager
async def session_scope(session_factory: async_sessionmaker) -> AsyncIterator[AsyncSession]:
    """
    One session per store operation.

    Driver errors are translated into the ledger's own exceptions:
    IntegrityError becomes DuplicateKeyError, anything else coming out of
    SQLAlchemy or the socket layer becomes BackendUnavailableError so the
    store router can fail over.
    """
    session = session_factory()
    try:
        yield session
    except ShopLedgerError:
        await _safe_rollback(session)
        raise
    except IntegrityError as e:
        await _safe_rollback(session)
        raise DuplicateKeyError(f"Duplicate key: {e.orig}") from e
    except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
        await _safe_rollback(session)
        logger.warning(f"Persistent store error: {type(e).__name__}: {e}")
        raise BackendUnavailableError(f"Persistent store unavailable: {type(e).__name__}") from e
    finally:
        await session.close()


async def _safe_rollback(session: AsyncSession) -> None:
    try:
        await session.rollback()
    except (SQLAlchemyError, OSError) as e:
        logger.debug(f"Rollback failed: {e}")


async def create_all(engine: AsyncEngine) -> None:
    # Import models so they register with Base
    from shopledger import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
