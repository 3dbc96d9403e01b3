"""Persistence of crawled admissions records."""

from __future__ import annotations

from .record_store import MemoryRecordStore, RecordStores, SQLiteRecordStore
from .schema import metadata as db_metadata
from .sqlite_manager import SQLiteManager

__all__ = ["MemoryRecordStore", "RecordStores", "SQLiteManager", "SQLiteRecordStore", "db_metadata"]
