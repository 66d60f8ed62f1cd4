"""
Async SQLAlchemy store handle.

One ``Database`` is built per process: ``connect()`` at startup,
``close()`` at shutdown.  Callers borrow sessions through ``session()``.

SQLite is supported for development and tests.  Its transactions start
with ``BEGIN IMMEDIATE`` so concurrent writers queue on the database lock
instead of failing mid-transaction, and when the engine shares a single
connection (``StaticPool``, in-memory databases) sessions are handed out
one at a time.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, nullcontext
from typing import Any, AsyncIterator, Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from database.models import Base

logger = logging.getLogger(__name__)


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """Take SQLite's write lock when a transaction begins."""

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


class Database:
    """Owns the engine and session factory for one database URL."""

    def __init__(self, url: str, *, echo: bool = False, **engine_options: Any) -> None:
        self.url = url
        self._echo = echo
        self._engine_options = engine_options
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        # A single shared connection cannot isolate concurrent transactions.
        self._session_lock: Optional[asyncio.Lock] = (
            asyncio.Lock() if engine_options.get("poolclass") is StaticPool else None
        )

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    async def connect(self) -> None:
        """Create the engine and check that the database answers."""
        if self._engine is not None:
            return
        self._engine = create_async_engine(self.url, echo=self._echo, **self._engine_options)
        if self._engine.dialect.name == "sqlite":
            _use_immediate_transactions(self._engine)
        self._session_factory = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        async with self._engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connected (%s)", self._engine.url.render_as_string(hide_password=True))

    async def create_all(self) -> None:
        """Create missing tables (unique constraints included)."""
        if self._engine is None:
            raise RuntimeError("Database is not connected")
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        if self._engine is None:
            return
        await self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session; commit on success, roll back on error."""
        if self._session_factory is None:
            raise RuntimeError("Database is not connected")
        guard = self._session_lock if self._session_lock is not None else nullcontext()
        async with guard:
            async with self._session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
