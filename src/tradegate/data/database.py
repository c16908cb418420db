"""Async SQLite database manager for credential and order records.

Uses aiosqlite for non-blocking database operations with WAL mode
for concurrent read/write performance.
"""

import asyncio
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Self

import aiosqlite

from tradegate.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS credentials (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    principal_id TEXT NOT NULL,
    venue TEXT NOT NULL,
    encrypted_api_key TEXT NOT NULL,
    encrypted_api_secret TEXT NOT NULL,
    encrypted_passphrase TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at REAL NOT NULL,
    updated_at REAL,
    last_used_at REAL,
    test_status TEXT NOT NULL DEFAULT 'NOT_TESTED',
    tested_at REAL
);

CREATE TABLE IF NOT EXISTS orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    principal_id TEXT NOT NULL,
    venue TEXT NOT NULL,
    symbol TEXT NOT NULL,
    order_type TEXT NOT NULL,
    side TEXT NOT NULL,
    amount TEXT NOT NULL,
    price TEXT,
    status TEXT NOT NULL,
    filled_amount TEXT NOT NULL DEFAULT '0',
    average_price TEXT,
    total_cost TEXT,
    fee_amount TEXT,
    fee_currency TEXT,
    exchange_order_id TEXT,
    error_message TEXT,
    created_at REAL NOT NULL,
    updated_at REAL,
    executed_at REAL,
    cancelled_at REAL
);
"""

_CREATE_INDEXES_SQL = """
CREATE UNIQUE INDEX IF NOT EXISTS idx_credentials_active_venue
    ON credentials(principal_id, venue) WHERE is_active = 1;

CREATE INDEX IF NOT EXISTS idx_credentials_principal
    ON credentials(principal_id);

CREATE INDEX IF NOT EXISTS idx_orders_principal_created
    ON orders(principal_id, created_at);

CREATE INDEX IF NOT EXISTS idx_orders_status
    ON orders(status);
"""


class TradeDatabase:
    """Async SQLite connection manager for the record store.

    Manages database lifecycle including schema creation, WAL mode
    configuration, and clean resource cleanup.

    Usage:
        async with TradeDatabase("data/tradegate.db") as db:
            await db.db.execute("SELECT ...")
    """

    def __init__(self, db_path: str = "data/tradegate.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run a write as its own transaction on the shared connection.

        Writers are serialised so a commit or rollback only ever covers the
        statements of the block that issued it. Commits on exit, rolls back
        and re-raises on error.
        """
        async with self._write_lock:
            connection = self.db
            try:
                yield connection
            except BaseException:
                await connection.rollback()
                raise
            await connection.commit()

    async def connect(self) -> None:
        """Open database connection, configure pragmas, and create schema."""
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)

        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")

        await self._create_tables()
        await self._ensure_schema_version()

        logger.info("trade_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("trade_db_closed", db_path=self._db_path)

    async def _create_tables(self) -> None:
        assert self._connection is not None
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.commit()

    async def _ensure_schema_version(self) -> None:
        assert self._connection is not None
        cursor = await self._connection.execute(
            "SELECT version FROM schema_version LIMIT 1"
        )
        row = await cursor.fetchone()
        if row is None:
            await self._connection.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
            await self._connection.commit()
            logger.info("schema_version_set", version=SCHEMA_VERSION)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
