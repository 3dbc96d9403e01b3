"""
Record stores: one per entity, backed by SQLite or kept in memory.

Both implementations share the same contract. ``add`` buffers a record and
``commit`` writes the whole buffer in one transaction, so a crawl persists one
batch per page rather than one row at a time.
"""

from __future__ import annotations

from dataclasses import astuple, dataclass, fields
from typing import Any, Dict, Generic, List, Optional, Tuple, Type, TypeVar

import structlog
from sqlalchemy import Table

from vstupcore.models import Application, City, Offer, Person, University
from vstupcore.observability.metrics import METRICS

from .schema import applications_table, cities_table, offers_table, persons_table, universities_table
from .sqlite_manager import SQLiteManager

logger = structlog.get_logger(__name__)

R = TypeVar("R")


class _BufferedStore(Generic[R]):
    def __init__(self, record_type: Type[R], entity: str) -> None:
        self.record_type = record_type
        self.entity = entity
        self.columns: Tuple[str, ...] = tuple(f.name for f in fields(record_type))  # type: ignore[arg-type]
        self._pending: List[R] = []

    @property
    def pending(self) -> List[R]:
        return list(self._pending)

    def add(self, record: R) -> None:
        if not isinstance(record, self.record_type):
            raise TypeError(f"{self.entity} store cannot hold {type(record).__name__}")
        self._pending.append(record)

    def discard_pending(self) -> None:
        if self._pending:
            logger.debug("Discarding uncommitted records", entity=self.entity, count=len(self._pending))
        self._pending.clear()

    def _check_columns(self, names: Any) -> None:
        unknown = [name for name in names if name not in self.columns]
        if unknown:
            raise ValueError(f"Unknown {self.entity} column(s): {', '.join(unknown)}")


class MemoryRecordStore(_BufferedStore[R]):
    """In-memory store for tests and dry runs."""

    def __init__(self, record_type: Type[R], entity: Optional[str] = None) -> None:
        super().__init__(record_type, entity or record_type.__name__.lower())
        self._records: List[R] = []
        self.commits = 0

    def _matching(self, filters: Dict[str, Any]) -> List[R]:
        self._check_columns(filters)
        return [r for r in self._records if all(getattr(r, k) == v for k, v in filters.items())]

    async def count(self, **filters: Any) -> int:
        return len(self._matching(filters))

    async def exists(self, **filters: Any) -> bool:
        return bool(self._matching(filters))

    async def find(self, **filters: Any) -> Optional[R]:
        matches = self._matching(filters)
        return matches[0] if matches else None

    async def distinct_count(self, column: str) -> int:
        self._check_columns([column])
        return len({getattr(r, column) for r in self._records})

    async def commit(self) -> None:
        self._records.extend(self._pending)
        if self._pending:
            METRICS["records_persisted_total"].labels(entity=self.entity).inc(len(self._pending))
        self._pending.clear()
        self.commits += 1

    async def all(self) -> List[R]:
        return list(self._records)


class SQLiteRecordStore(_BufferedStore[R]):
    """Record store over one table of the SQLite database."""

    def __init__(self, manager: SQLiteManager, table: Table, record_type: Type[R]) -> None:
        super().__init__(record_type, table.name)
        self.manager = manager
        self.table = table
        missing = [name for name in self.columns if name not in table.c]
        if missing:
            raise ValueError(f"Table {table.name} lacks columns for {record_type.__name__}: {missing}")

    def _where(self, filters: Dict[str, Any]) -> Tuple[str, Tuple[Any, ...]]:
        self._check_columns(filters)
        if not filters:
            return "", ()
        # IS compares NULLs as equal, unlike =.
        clause = " AND ".join(f"{name} IS ?" for name in filters)
        return f" WHERE {clause}", tuple(filters.values())

    async def count(self, **filters: Any) -> int:
        where, params = self._where(filters)
        async with self.manager.get_connection() as conn:
            cursor = await conn.execute(f"SELECT COUNT(*) FROM {self.table.name}{where}", params)
            row = await cursor.fetchone()
        return int(row[0]) if row is not None else 0

    async def exists(self, **filters: Any) -> bool:
        where, params = self._where(filters)
        async with self.manager.get_connection() as conn:
            cursor = await conn.execute(f"SELECT 1 FROM {self.table.name}{where} LIMIT 1", params)
            row = await cursor.fetchone()
        return row is not None

    async def find(self, **filters: Any) -> Optional[R]:
        where, params = self._where(filters)
        sql = f"SELECT {', '.join(self.columns)} FROM {self.table.name}{where} ORDER BY rowid LIMIT 1"
        async with self.manager.get_connection() as conn:
            cursor = await conn.execute(sql, params)
            row = await cursor.fetchone()
        return self._to_record(row) if row is not None else None

    async def distinct_count(self, column: str) -> int:
        self._check_columns([column])
        async with self.manager.get_connection() as conn:
            cursor = await conn.execute(f"SELECT COUNT(DISTINCT {column}) FROM {self.table.name}")
            row = await cursor.fetchone()
        return int(row[0]) if row is not None else 0

    async def commit(self) -> None:
        """Insert every buffered record in a single transaction."""
        if not self._pending:
            return
        placeholders = ", ".join("?" for _ in self.columns)
        sql = f"INSERT INTO {self.table.name} ({', '.join(self.columns)}) VALUES ({placeholders})"
        values = [astuple(record) for record in self._pending]  # type: ignore[arg-type]

        async with self.manager.get_connection() as conn:
            try:
                await conn.executemany(sql, values)
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise

        METRICS["records_persisted_total"].labels(entity=self.entity).inc(len(values))
        logger.debug("Committed records", entity=self.entity, count=len(values))
        self._pending.clear()

    async def all(self) -> List[R]:
        sql = f"SELECT {', '.join(self.columns)} FROM {self.table.name} ORDER BY rowid"
        async with self.manager.get_connection() as conn:
            cursor = await conn.execute(sql)
            rows = await cursor.fetchall()
        return [self._to_record(row) for row in rows]

    def _to_record(self, row: Any) -> R:
        return self.record_type(**{name: row[name] for name in self.columns})


@dataclass
class RecordStores:
    """The five entity stores used by the crawl pipeline."""

    cities: Any
    universities: Any
    offers: Any
    persons: Any
    applications: Any

    @classmethod
    def in_memory(cls) -> "RecordStores":
        return cls(
            cities=MemoryRecordStore(City, "cities"),
            universities=MemoryRecordStore(University, "universities"),
            offers=MemoryRecordStore(Offer, "offers"),
            persons=MemoryRecordStore(Person, "persons"),
            applications=MemoryRecordStore(Application, "applications"),
        )

    @classmethod
    def sqlite(cls, manager: SQLiteManager) -> "RecordStores":
        return cls(
            cities=SQLiteRecordStore(manager, cities_table, City),
            universities=SQLiteRecordStore(manager, universities_table, University),
            offers=SQLiteRecordStore(manager, offers_table, Offer),
            persons=SQLiteRecordStore(manager, persons_table, Person),
            applications=SQLiteRecordStore(manager, applications_table, Application),
        )

    def all_stores(self) -> Dict[str, Any]:
        return {
            "cities": self.cities,
            "universities": self.universities,
            "offers": self.offers,
            "persons": self.persons,
            "applications": self.applications,
        }

    def discard_pending(self) -> None:
        for store in self.all_stores().values():
            store.discard_pending()

    async def counts(self) -> Dict[str, int]:
        return {name: await store.count() for name, store in self.all_stores().items()}
