"""SQLite file holding one row per persisted snapshot.

The document itself is stored as JSON text; ``at`` and ``expire_at`` are
lifted into indexed columns for the time-range queries and the retention
purge. WAL journaling lets the query API read while a cycle writes.
"""

import os
from typing import Self

import aiosqlite

from collector.exceptions import StoreError
from collector.logging import get_logger

logger = get_logger(__name__)

# Stored in PRAGMA user_version; bump together with _MIGRATIONS.
SCHEMA_VERSION = 1

_MIGRATIONS: dict[int, str] = {
    1: """
    CREATE TABLE IF NOT EXISTS snapshots (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        at INTEGER NOT NULL,
        expire_at INTEGER NOT NULL,
        document TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_snapshots_at ON snapshots(at);
    CREATE INDEX IF NOT EXISTS idx_snapshots_expire_at ON snapshots(expire_at);
    """,
}

BUSY_TIMEOUT_MS = 5000


class SnapshotDatabase:
    """Owns the aiosqlite connection for one snapshot file.

    Usage:
        async with SnapshotDatabase("/var/lib/collector/snapshots.db") as database:
            store = SnapshotStore(database)
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def db(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise StoreError(f"snapshot database {self._db_path} is not open")
        return self._connection

    async def connect(self) -> None:
        parent = os.path.dirname(self._db_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        try:
            self._connection = await aiosqlite.connect(self._db_path)
            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
            await self._migrate()
        except aiosqlite.Error as e:
            await self.close()
            raise StoreError(f"cannot open snapshot database {self._db_path}: {e}") from e

        logger.info("snapshot_db_opened", db_path=self._db_path, schema=SCHEMA_VERSION)

    async def close(self) -> None:
        if self._connection is None:
            return
        connection, self._connection = self._connection, None
        await connection.close()
        logger.debug("snapshot_db_closed", db_path=self._db_path)

    async def _migrate(self) -> None:
        cursor = await self.db.execute("PRAGMA user_version")
        row = await cursor.fetchone()
        current = row[0] if row else 0
        for version in range(current + 1, SCHEMA_VERSION + 1):
            await self.db.executescript(_MIGRATIONS[version])
            await self.db.execute(f"PRAGMA user_version={version}")
            await self.db.commit()
            logger.info("snapshot_db_migrated", version=version)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()
