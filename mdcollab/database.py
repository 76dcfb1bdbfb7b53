"""Database engine, schema creation and SQLite connection setup."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

if TYPE_CHECKING:
    from mdcollab.config import Settings

logger = logging.getLogger(__name__)

# Seconds a connection waits for another writer before failing with "database is locked".
SQLITE_BUSY_TIMEOUT = 30


def _configure_sqlite(dbapi_connection: Any, _connection_record: Any) -> None:
    # WAL lets readers proceed while a cascade commits step by step in another session.
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute(f"PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT * 1000}")
    finally:
        cursor.close()


def create_engine(
    settings: Settings,
) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Create the async engine and a session factory bound to it.

    Sessions keep attribute values after commit (``expire_on_commit=False``):
    services commit after every step of a cascade and keep using the loaded
    objects afterwards.
    """
    is_sqlite = settings.database_url.startswith("sqlite")
    engine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
        connect_args={"timeout": SQLITE_BUSY_TIMEOUT} if is_sqlite else {},
    )
    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _configure_sqlite)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    return engine, session_factory


async def init_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    from mdcollab.models.base import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.debug("Database schema ready")
