"""Typed append/query interface over persisted snapshots.

SnapshotStore is the only code that touches the ``snapshots`` table.
Documents go in as Snapshot models and come back out as Snapshot models;
the JSON text column is an implementation detail.

Expired rows (``expire_at`` in the past) are purged on every insert, the
way a TTL index would drop them.
"""

import json
import sqlite3
import time

from collector.exceptions import StoreError
from collector.logging import get_logger
from collector.models import Snapshot
from collector.store.database import SnapshotDatabase

logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SnapshotStore:
    """Async SQLite store for cycle snapshots.

    Usage:
        async with SnapshotDatabase(settings.store.path) as database:
            store = SnapshotStore(database)
            await store.insert(snapshot)
            latest = await store.latest()
    """

    def __init__(self, database: SnapshotDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def insert(self, snapshot: Snapshot) -> int:
        """Persist one snapshot and purge expired ones. Returns the row id."""
        document = json.dumps(snapshot.to_document(), allow_nan=False)
        try:
            cursor = await self._database.db.execute(
                "INSERT INTO snapshots (at, expire_at, document) VALUES (?, ?, ?)",
                (snapshot.at, snapshot.expire_at, document),
            )
            await self._database.db.commit()
        except sqlite3.Error as e:
            raise StoreError(f"snapshot insert failed: {e}") from e

        row_id = cursor.lastrowid or 0
        logger.info("snapshot_inserted", at=snapshot.at, row_id=row_id, bytes=len(document))
        await self.purge_expired(snapshot.at)
        return row_id

    async def purge_expired(self, now_ms: int | None = None) -> int:
        """Delete snapshots whose retention window has passed."""
        now_ms = now_ms if now_ms is not None else _now_ms()
        try:
            cursor = await self._database.db.execute(
                "DELETE FROM snapshots WHERE expire_at <= ?", (now_ms,)
            )
            await self._database.db.commit()
        except sqlite3.Error as e:
            raise StoreError(f"snapshot purge failed: {e}") from e
        if cursor.rowcount:
            logger.debug("snapshots_purged", count=cursor.rowcount)
        return cursor.rowcount

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def _select(self, where: str, params: tuple, order: str, limit: int) -> list[Snapshot]:
        query = (
            f"SELECT document FROM snapshots {where} "
            f"ORDER BY {order} LIMIT ?"
        )
        try:
            cursor = await self._database.db.execute(query, (*params, limit))
            rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"snapshot query failed: {e}") from e
        return [Snapshot.from_document(json.loads(row[0])) for row in rows]

    async def latest(self) -> Snapshot | None:
        rows = await self._select("", (), "at DESC, id DESC", 1)
        return rows[0] if rows else None

    async def recent(self, limit: int) -> list[Snapshot]:
        """Up to ``limit`` snapshots, newest first."""
        return await self._select("", (), "at DESC, id DESC", limit)

    async def between(self, min_at: int, max_at: int, limit: int) -> list[Snapshot]:
        """Snapshots with ``min_at <= at <= max_at``, oldest first."""
        return await self._select(
            "WHERE at >= ? AND at <= ?", (min_at, max_at), "at ASC, id ASC", limit
        )

    async def closest(self, target_ms: int) -> Snapshot | None:
        """The snapshot whose ``at`` is nearest ``target_ms`` (earlier wins a tie)."""
        try:
            cursor = await self._database.db.execute(
                "SELECT document FROM snapshots ORDER BY ABS(at - ?) ASC, at ASC LIMIT 1",
                (target_ms,),
            )
            row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"snapshot query failed: {e}") from e
        return Snapshot.from_document(json.loads(row[0])) if row else None

    async def count(self) -> int:
        cursor = await self._database.db.execute("SELECT COUNT(*) FROM snapshots")
        row = await cursor.fetchone()
        return row[0] if row else 0
