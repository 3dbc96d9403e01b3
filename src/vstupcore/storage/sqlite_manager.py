"""
Manages the SQLite database backing the record stores.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite
import structlog
from sqlalchemy import create_engine

from vstupcore.config.config import SQLiteConfig

from .schema import metadata as db_metadata

logger = structlog.get_logger(__name__)

# Increment whenever the schema in schema.py changes.
CURRENT_SCHEMA_VERSION = 1


class SQLiteManager:
    """Handles connections and migrations of the SQLite database."""

    def __init__(self, config: SQLiteConfig):
        self.config = config
        self.db_path = Path(config.db_path)
        self._pool: asyncio.Queue[aiosqlite.Connection] = asyncio.Queue(maxsize=config.pool_size)
        self._initialized = False

    async def initialize(self) -> None:
        """Creates the connection pool and runs migrations."""
        if self._initialized:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        for _ in range(self.config.pool_size):
            conn = await self._create_connection()
            await self._pool.put(conn)

        async with self.get_connection() as conn:
            await self._run_migrations(conn)
        self._initialized = True

    async def _create_connection(self) -> aiosqlite.Connection:
        conn = await aiosqlite.connect(self.db_path)
        if self.config.wal_mode:
            await conn.execute("PRAGMA journal_mode=WAL;")
        await conn.execute("PRAGMA foreign_keys=ON;")
        await conn.execute("PRAGMA busy_timeout = 5000;")
        conn.row_factory = aiosqlite.Row
        return conn

    @asynccontextmanager
    async def get_connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """Gets a connection from the pool."""
        conn = await self._pool.get()
        try:
            yield conn
        finally:
            await self._pool.put(conn)

    async def _run_migrations(self, conn: aiosqlite.Connection) -> None:
        cursor = await conn.execute("PRAGMA user_version;")
        version_row = await cursor.fetchone()
        current_version = version_row[0] if version_row is not None else 0

        if current_version < CURRENT_SCHEMA_VERSION:
            logger.info("Migrating database schema", from_version=current_version, to_version=CURRENT_SCHEMA_VERSION)
            engine = create_engine(f"sqlite:///{self.db_path}")
            try:
                db_metadata.create_all(engine)
            finally:
                engine.dispose()
            await conn.execute(f"PRAGMA user_version = {CURRENT_SCHEMA_VERSION};")
            await conn.commit()
            logger.info("Database migration complete.")

    async def close(self) -> None:
        """Closes all connections in the pool."""
        while not self._pool.empty():
            conn = await self._pool.get()
            await conn.close()
        self._initialized = False
