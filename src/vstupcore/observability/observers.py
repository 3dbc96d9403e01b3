"""
Ready-made progress and request-log sinks.
"""

from __future__ import annotations

from typing import Callable, Iterable, List, Optional

import structlog

from vstupcore.protocols import CrawlObserver, ProgressSnapshot, RequestLogEntry, RequestStatus

_LEVEL_BY_STATUS = {
    RequestStatus.PENDING: "debug",
    RequestStatus.DELAYING: "debug",
    RequestStatus.SUCCESS: "info",
    RequestStatus.FAILED: "warning",
    RequestStatus.TIMEOUT: "warning",
    RequestStatus.CANCELLED: "info",
    RequestStatus.ERROR: "error",
}


class LoggingObserver:
    """Writes every event to structlog."""

    def __init__(self, logger: Optional[structlog.stdlib.BoundLogger] = None) -> None:
        self.logger = logger or structlog.get_logger("vstupcore.progress")
        self._last_stage: Optional[str] = None

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        # One INFO line per stage change, the rest at DEBUG.
        if snapshot.current_stage != self._last_stage:
            self._last_stage = snapshot.current_stage
            self.logger.info(
                "Crawl stage",
                stage=snapshot.current_stage,
                percentage=round(snapshot.overall_percentage, 2),
            )
        else:
            self.logger.debug(
                "Crawl progress",
                stage=snapshot.current_stage,
                percentage=round(snapshot.overall_percentage, 2),
            )

    def on_request_log(self, entry: RequestLogEntry) -> None:
        log = getattr(self.logger, _LEVEL_BY_STATUS[entry.status])
        log(
            "Request",
            url=entry.url,
            kind=entry.kind.value,
            status=entry.status.value,
            detail=entry.detail,
            duration_ms=round(entry.duration * 1000, 1),
        )


class CallbackObserver:
    """Adapts two plain callables to the observer protocol."""

    def __init__(
        self,
        on_progress: Optional[Callable[[ProgressSnapshot], None]] = None,
        on_request_log: Optional[Callable[[RequestLogEntry], None]] = None,
    ) -> None:
        self._on_progress = on_progress
        self._on_request_log = on_request_log

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        if self._on_progress is not None:
            self._on_progress(snapshot)

    def on_request_log(self, entry: RequestLogEntry) -> None:
        if self._on_request_log is not None:
            self._on_request_log(entry)


class RecordingObserver:
    """Keeps every event in memory."""

    def __init__(self) -> None:
        self.snapshots: List[ProgressSnapshot] = []
        self.entries: List[RequestLogEntry] = []

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        self.snapshots.append(snapshot)

    def on_request_log(self, entry: RequestLogEntry) -> None:
        self.entries.append(entry)


class CompositeObserver:
    """Fans events out to several observers in order."""

    def __init__(self, observers: Iterable[CrawlObserver]) -> None:
        self.observers = list(observers)

    def on_progress(self, snapshot: ProgressSnapshot) -> None:
        for observer in self.observers:
            observer.on_progress(snapshot)

    def on_request_log(self, entry: RequestLogEntry) -> None:
        for observer in self.observers:
            observer.on_request_log(entry)
