"""
Protocol definitions and shared value types for VstupCore.

The crawl core talks to its collaborators (record stores, progress and
request-log consumers) only through the contracts declared here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Protocol, TypeVar, runtime_checkable

R = TypeVar("R")


class RequestKind(Enum):
    """Logical request kinds routed through the retry orchestrator."""

    GET_HTML = "GET HTML"
    GET_JSON = "GET JSON"
    POST = "POST"


class RequestStatus(Enum):
    """Status carried by a request log entry."""

    PENDING = "Pending"
    DELAYING = "Delaying"
    SUCCESS = "Success"
    FAILED = "Failed"
    TIMEOUT = "Timeout"
    CANCELLED = "Cancelled"
    ERROR = "Error"


@dataclass(frozen=True)
class ProgressSnapshot:
    """Aggregate crawl progress at one point in time."""

    total_cities: int
    parsed_cities: int
    total_universities: int
    parsed_universities: int
    total_offers: int
    parsed_offers: int
    total_applications: int
    parsed_applications: int
    overall_percentage: float
    current_stage: str


@dataclass(frozen=True)
class RequestLogEntry:
    """One request attempt as seen by the retry orchestrator."""

    url: str
    kind: RequestKind
    status: RequestStatus
    detail: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    duration: float = 0.0


@runtime_checkable
class RecordStore(Protocol[R]):
    """Minimal per-entity persistence contract.

    Filters are column equality matches, e.g. ``count(city_id=city.id)``.
    ``add`` only buffers; nothing is visible to other readers until ``commit``.
    """

    async def count(self, **filters: Any) -> int: ...

    async def exists(self, **filters: Any) -> bool: ...

    async def find(self, **filters: Any) -> Optional[R]: ...

    async def distinct_count(self, column: str) -> int: ...

    def add(self, record: R) -> None: ...

    async def commit(self) -> None: ...

    async def all(self) -> List[R]: ...

    def discard_pending(self) -> None: ...


@runtime_checkable
class CrawlObserver(Protocol):
    """Synchronous sink for progress snapshots and request log entries."""

    def on_progress(self, snapshot: ProgressSnapshot) -> None: ...

    def on_request_log(self, entry: RequestLogEntry) -> None: ...
