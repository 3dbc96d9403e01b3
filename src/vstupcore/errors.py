"""
Exception taxonomy for the crawl pipeline.

Transient network failures are classified and retried inside the retry
orchestrator; everything else surfaces to the caller.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class FailureKind(Enum):
    """Semantic kind of a failed HTTP exchange."""

    BLOCKED = "Blocked"
    RATE_LIMITED = "RateLimited"
    UNAUTHORIZED = "Unauthorized"
    NOT_FOUND = "NotFound"
    SERVER_ERROR = "ServerError"
    BAD_GATEWAY = "BadGateway"
    SERVICE_UNAVAILABLE = "ServiceUnavailable"
    NETWORK_ERROR = "NetworkError"


# First match wins, so the order of this table is significant.
_CLASSIFICATION_RULES: tuple[tuple[FailureKind, tuple[str, ...]], ...] = (
    (FailureKind.BLOCKED, ("403", "forbidden")),
    (FailureKind.RATE_LIMITED, ("429", "too many")),
    (FailureKind.UNAUTHORIZED, ("401", "unauthorized")),
    (FailureKind.NOT_FOUND, ("404", "not found")),
    (FailureKind.SERVER_ERROR, ("500", "internal server")),
    (FailureKind.BAD_GATEWAY, ("502", "bad gateway")),
    (FailureKind.SERVICE_UNAVAILABLE, ("503", "service unavailable")),
)


def classify_failure(message: str) -> FailureKind:
    """Classify a failure from its message text."""
    text = (message or "").lower()
    for kind, needles in _CLASSIFICATION_RULES:
        if any(needle in text for needle in needles):
            return kind
    return FailureKind.NETWORK_ERROR


class VstupError(Exception):
    """Base class for all crawler errors."""


class ConfigurationError(VstupError):
    """Fatal startup error, e.g. a missing or empty proxy credential file."""


class NoActiveProxies(VstupError):
    """Every client in the proxy pool has been deactivated."""

    def __init__(self, message: str = "No active proxies left") -> None:
        super().__init__(message)


class ClassifiedNetworkFailure(VstupError):
    """A failed HTTP exchange tagged with a semantic kind."""

    def __init__(self, message: str, kind: Optional[FailureKind] = None, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.kind = kind or classify_failure(message)
        self.status = status

    @classmethod
    def from_status(cls, status: int, reason: Optional[str], context: str = "") -> "ClassifiedNetworkFailure":
        message = f"{status} {reason or ''}".strip()
        if context:
            message = f"{message} - {context}"
        return cls(message, kind=classify_failure(message), status=status)


class RequestTimeout(VstupError):
    """A single HTTP exchange exceeded the client timeout."""


class AllProxiesFailed(VstupError):
    """The retry budget was exhausted without a successful exchange."""

    def __init__(self, url: str, attempts: int) -> None:
        super().__init__(f"All {attempts} proxies failed for {url}")
        self.url = url
        self.attempts = attempts


class MalformedPayload(VstupError):
    """A response body could not be decoded into the expected shape. Never retried."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Malformed payload from {url}: {reason}")
        self.url = url
        self.reason = reason


class CrawlCancelled(Exception):
    """Cancellation was requested. Deliberately outside the VstupError hierarchy."""

    def __init__(self, message: str = "Crawl cancelled") -> None:
        super().__init__(message)
