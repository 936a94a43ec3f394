"""Snapshot persistence on SQLite (aiosqlite)."""

from collector.store.database import SnapshotDatabase
from collector.store.repository import SnapshotStore

__all__ = ["SnapshotDatabase", "SnapshotStore"]
