"""
Persistent store used by the node.

Wraps an async SQLAlchemy engine. The orchestrator only relies on four
operations: a readiness probe with bounded retries, an optional schema
migration, the block number of the most recent persisted trade, and close.
Once `closed` is set no new work is accepted.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from sqlalchemy import BigInteger, Column, Integer, String, select, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import declarative_base

from .constants import DB_RETRY_DELAY, DB_WAIT_ATTEMPTS
from .errors import StoreClosedError

Base = declarative_base()


class Trade(Base):
    __tablename__ = "trades"

    id = Column(Integer, primary_key=True, autoincrement=True)
    transaction_hash = Column(String(66), nullable=False, index=True)
    block_number = Column(BigInteger, nullable=False, index=True)


def _ensure_sqlite_directory(url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return
    database = parsed.database
    if not database or database == ":memory:":
        return
    Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)


class Store:
    """Async SQLAlchemy engine plus the node's availability flag."""

    def __init__(
        self,
        url: str,
        engine: Optional[AsyncEngine] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._logger = logger or logging.getLogger(__name__)
        self.url = url
        if engine is None:
            _ensure_sqlite_directory(url)
            engine = create_async_engine(url, pool_pre_ping=True)
        self._engine: AsyncEngine = engine
        self.closed = False

    @property
    def engine(self) -> AsyncEngine:
        if self.closed:
            raise StoreClosedError("store is shutting down")
        return self._engine

    async def ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def wait_for(
        self, max_attempts: int = DB_WAIT_ATTEMPTS, delay: float = DB_RETRY_DELAY
    ) -> bool:
        """Probe the database until it answers or attempts run out."""
        for attempt in range(max_attempts):
            try:
                await self.ping()
                self._logger.info("✅ Database connection established")
                return True
            except StoreClosedError:
                raise
            except Exception as e:
                self._logger.warning(
                    f"❌ Database connection attempt {attempt + 1}/{max_attempts} failed: {e}"
                )
                if attempt < max_attempts - 1:
                    await asyncio.sleep(delay)
        return False

    async def migrate(self) -> None:
        """Bring the schema up to date."""
        self._logger.info("📦 Running database migration...")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self._logger.info("✅ Database migration complete")

    async def last_trade_block(self) -> Optional[int]:
        """Block number of the most recently persisted trade, if any."""
        async with self.engine.connect() as conn:
            result = await conn.execute(
                select(Trade.block_number).order_by(Trade.block_number.desc()).limit(1)
            )
            block = result.scalar_one_or_none()
        return int(block) if block is not None else None

    async def close(self) -> None:
        self.closed = True
        await self._engine.dispose()
        self._logger.info("🛑 Database connection closed")
