"""
Retry orchestration over the proxy pool.

A logical request is attempted at most once per proxy that was active when
the call started. Every failed attempt takes its client out of rotation, so
each retry goes out through a different proxy.
"""

from __future__ import annotations

import asyncio
import random
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar

import aiohttp
import structlog

from vstupcore.cancellation import CancellationToken
from vstupcore.config.config import RetryConfig
from vstupcore.crawler.proxy_pool import ProxyClient, ProxyPool
from vstupcore.errors import (
    AllProxiesFailed,
    ClassifiedNetworkFailure,
    CrawlCancelled,
    FailureKind,
    MalformedPayload,
    NoActiveProxies,
    RequestTimeout,
    classify_failure,
)
from vstupcore.observability.metrics import METRICS
from vstupcore.protocols import CrawlObserver, RequestKind, RequestLogEntry, RequestStatus

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float, CancellationToken], Awaitable[None]]


async def cancellable_sleep(seconds: float, cancel: CancellationToken) -> None:
    await cancel.sleep(seconds)


def backoff_delay_ms(attempt: int, rng: random.Random, config: Optional[RetryConfig] = None) -> float:
    """Delay before retry number ``attempt``: capped exponential growth plus jitter."""
    config = config or RetryConfig()
    deterministic = min(config.base_delay_ms * config.growth_factor**attempt, config.max_delay_ms)
    return deterministic + rng.randrange(*config.jitter_ms)


def blocked_delay_ms(attempt: int, rng: random.Random, config: Optional[RetryConfig] = None) -> float:
    """Extra cool-down after a proxy was blocked by the target."""
    config = config or RetryConfig()
    return config.blocked_delay_ms + attempt * config.blocked_step_ms + rng.randrange(*config.blocked_jitter_ms)


def timeout_delay_ms(attempt: int, rng: random.Random, config: Optional[RetryConfig] = None) -> float:
    config = config or RetryConfig()
    return config.timeout_delay_ms + attempt * config.timeout_step_ms + rng.randrange(*config.timeout_jitter_ms)


class RetryOrchestrator:
    """Runs one logical request against successive proxies until it succeeds."""

    def __init__(
        self,
        pool: ProxyPool,
        observer: CrawlObserver,
        config: Optional[RetryConfig] = None,
        *,
        rng: Optional[random.Random] = None,
        sleep: Optional[SleepFunc] = None,
    ) -> None:
        self.pool = pool
        self.observer = observer
        self.config = config or RetryConfig()
        self.rng = rng or random.Random()
        self._sleep = sleep or cancellable_sleep

    def _log(self, url: str, kind: RequestKind, status: RequestStatus, detail: str, started: float) -> None:
        duration = time.monotonic() - started
        self.observer.on_request_log(
            RequestLogEntry(
                url=url,
                kind=kind,
                status=status,
                detail=detail,
                timestamp=datetime.now(timezone.utc),
                duration=duration,
            )
        )
        if status not in (RequestStatus.PENDING, RequestStatus.DELAYING):
            METRICS["requests_total"].labels(kind=kind.value, status=status.value).inc()
            METRICS["request_duration_seconds"].labels(kind=kind.value).observe(duration)

    async def execute(
        self,
        action: Callable[[ProxyClient], Awaitable[T]],
        url: str,
        kind: RequestKind,
        cancel: Optional[CancellationToken] = None,
    ) -> T:
        """Run ``action`` with a client from the pool, retrying on other clients.

        Raises:
            CrawlCancelled: As soon as cancellation is observed.
            NoActiveProxies: If the pool has no active client left.
            MalformedPayload: Immediately, without retrying.
            AllProxiesFailed: When every attempt failed.
        """
        cancel = cancel or CancellationToken()
        budget = self.pool.active_count
        if budget == 0:
            raise NoActiveProxies()

        for attempt in range(budget):
            started = time.monotonic()
            client: Optional[ProxyClient] = None
            try:
                cancel.raise_if_cancelled()

                if attempt > 0:
                    delay = backoff_delay_ms(attempt, self.rng, self.config)
                    self._log(
                        url, kind, RequestStatus.DELAYING, f"Waiting {delay:.0f}ms before retry {attempt + 1}", started
                    )
                    await self._sleep(delay / 1000, cancel)

                client = await self.pool.acquire()
                self._log(url, kind, RequestStatus.PENDING, f"Attempt {attempt + 1}/{budget} via {client.proxy_id}", started)

                result = await action(client)

                self._log(url, kind, RequestStatus.SUCCESS, f"Completed on attempt {attempt + 1}", started)
                return result

            except (CrawlCancelled, asyncio.CancelledError):
                self._log(url, kind, RequestStatus.CANCELLED, "Cancelled", started)
                raise

            except NoActiveProxies:
                self._log(url, kind, RequestStatus.FAILED, "No active proxies left", started)
                raise

            except MalformedPayload as e:
                self._log(url, kind, RequestStatus.ERROR, str(e), started)
                raise

            except (RequestTimeout, asyncio.TimeoutError) as e:
                await self._deactivate(client)
                self._log(url, kind, RequestStatus.TIMEOUT, f"Attempt {attempt + 1}: {e}", started)
                logger.warning("Proxy timeout", url=url, attempt=attempt + 1, proxy=_proxy_id(client))
                if attempt < budget - 1:
                    await self._cool_down(timeout_delay_ms(attempt, self.rng, self.config), url, kind, cancel, started)

            except (ClassifiedNetworkFailure, aiohttp.ClientError) as e:
                await self._deactivate(client)
                failure_kind = e.kind if isinstance(e, ClassifiedNetworkFailure) else _classify_client_error(e)
                self._log(
                    url, kind, RequestStatus.FAILED, f"Attempt {attempt + 1}: {failure_kind.value} - {e}", started
                )
                logger.warning(
                    "Proxy failed",
                    url=url,
                    attempt=attempt + 1,
                    failure=failure_kind.value,
                    proxy=_proxy_id(client),
                    error=str(e),
                )
                if failure_kind is FailureKind.BLOCKED and attempt < budget - 1:
                    await self._cool_down(blocked_delay_ms(attempt, self.rng, self.config), url, kind, cancel, started)

            except Exception as e:
                await self._deactivate(client)
                self._log(url, kind, RequestStatus.ERROR, f"Attempt {attempt + 1}: Unexpected - {e}", started)
                logger.error(
                    "Unexpected request error",
                    url=url,
                    attempt=attempt + 1,
                    proxy=_proxy_id(client),
                    error=str(e),
                    error_type=type(e).__name__,
                )

        self._log(url, kind, RequestStatus.FAILED, f"All {budget} proxies exhausted", time.monotonic())
        raise AllProxiesFailed(url, budget)

    async def _cool_down(
        self, delay_ms: float, url: str, kind: RequestKind, cancel: CancellationToken, started: float
    ) -> None:
        # Runs outside the attempt's try block, so cancellation is logged here.
        try:
            await self._sleep(delay_ms / 1000, cancel)
        except (CrawlCancelled, asyncio.CancelledError):
            self._log(url, kind, RequestStatus.CANCELLED, "Cancelled during cool-down", started)
            raise

    async def _deactivate(self, client: Optional[ProxyClient]) -> None:
        if client is not None:
            await self.pool.deactivate(client)


def _classify_client_error(error: aiohttp.ClientError) -> FailureKind:
    if isinstance(error, aiohttp.ClientResponseError):
        return classify_failure(f"{error.status} {error.message}")
    return classify_failure(str(error))


def _proxy_id(client: Optional[ProxyClient]) -> Optional[str]:
    return client.proxy_id if client is not None else None
