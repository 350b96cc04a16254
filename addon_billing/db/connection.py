"""
Database Access for the Add-on Engine

One lazily created async engine per process. Record reads share a single
session per recalculation; history writes open their own transactions
through the session maker.

Source: https://docs.sqlalchemy.org/en/20/orm/extensions/asyncio.html
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from addon_billing.core.config import AddOnEngineSettings, get_settings
from addon_billing.models import Base
from addon_billing.utils.logging import get_logger

if TYPE_CHECKING:
    from addon_billing.services.addon.recalculation import RecalculationService

logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def _redacted(url: str) -> str:
    return url.rsplit("@", 1)[-1]


def build_engine(settings: AddOnEngineSettings) -> AsyncEngine:
    """
    Create an engine for the configured database.

    Under ENVIRONMENT=testing each checkout gets a fresh connection
    (NullPool takes no pool sizing arguments).
    """
    if settings.is_testing:
        return create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG, poolclass=NullPool)
    return create_async_engine(
        settings.DATABASE_URL,
        echo=settings.DEBUG,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_pre_ping=True,
    )


def get_engine() -> AsyncEngine:
    """Return the process-wide engine, creating it on first use."""
    global _engine

    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings)
        logger.info(f"Add-on engine database: {_redacted(settings.DATABASE_URL)}")
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Return the process-wide session maker bound to get_engine()."""
    global _session_maker

    if _session_maker is None:
        # History rows are read back after commit
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False, autoflush=False)
    return _session_maker


@asynccontextmanager
async def live_service(
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
    settings: Optional[AddOnEngineSettings] = None,
) -> AsyncIterator["RecalculationService"]:
    """
    Yield a RecalculationService wired to the SQL stores.

    The record session is closed on exit. History transactions commit
    on their own, so nothing here commits.

    Example:
        >>> async with live_service() as service:
        ...     await service.recalculate_visit(visit_id)
    """
    from addon_billing.services.addon import RecalculationService, StoreMode, create_stores

    maker = session_maker or get_session_maker()
    async with maker() as session:
        records, history = create_stores(StoreMode.LIVE, session=session, session_maker=maker)
        yield RecalculationService(records, history, settings=settings)


async def init_models(engine: Optional[AsyncEngine] = None) -> None:
    """Create the engine's tables when they are missing."""
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Ensured {len(Base.metadata.tables)} add-on tables")


async def dispose_engine() -> None:
    """Dispose the process-wide engine; the next get_engine() builds a new one."""
    global _engine, _session_maker

    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_maker = None
    logger.info("Add-on engine database pool disposed")
