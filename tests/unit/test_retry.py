"""
Tests for backoff schedules and the retry orchestrator.
"""

import asyncio
import random

import aiohttp
import pytest

from vstupcore.cancellation import CancellationToken
from vstupcore.config.config import RetryConfig
from vstupcore.crawler.proxy_pool import ProxyCredentials, ProxyPool
from vstupcore.crawler.retry import RetryOrchestrator, backoff_delay_ms, blocked_delay_ms, timeout_delay_ms
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
from vstupcore.protocols import RequestKind, RequestStatus

from tests.helpers import metric_delta

URL = "https://vstup.example/page"


def make_pool(count: int = 3) -> ProxyPool:
    return ProxyPool(
        [ProxyCredentials(f"10.0.1.{i}", 9000 + i, "user", "secret") for i in range(count)],
        rng=random.Random(0),
    )


def statuses(observer):
    return [entry.status for entry in observer.entries]


@pytest.mark.unit
class TestBackoffSchedule:
    @pytest.mark.parametrize("attempt", range(0, 12))
    def test_backoff_bounds(self, attempt):
        rng = random.Random(attempt)
        deterministic = min(1000 * 1.5**attempt, 10000)
        for _ in range(50):
            delay = backoff_delay_ms(attempt, rng)
            assert deterministic + 500 <= delay < deterministic + 2000
            assert delay < 12000

    def test_deterministic_part_is_non_decreasing(self):
        config = RetryConfig(jitter_ms=(0, 1))
        delays = [backoff_delay_ms(i, random.Random(0), config) for i in range(15)]
        assert delays == sorted(delays)
        assert delays[-1] == 10000

    def test_blocked_and_timeout_cool_downs(self):
        rng = random.Random(1)
        for attempt in range(4):
            assert 5000 + attempt * 2000 + 1000 <= blocked_delay_ms(attempt, rng) < 5000 + attempt * 2000 + 5000
            assert 2000 + attempt * 1000 + 500 <= timeout_delay_ms(attempt, rng) < 2000 + attempt * 1000 + 2000

    def test_invalid_jitter_range_rejected(self):
        with pytest.raises(ValueError):
            RetryConfig(jitter_ms=(2000, 500))


@pytest.mark.unit
class TestClassification:
    @pytest.mark.parametrize(
        "message,kind",
        [
            ("403 Forbidden", FailureKind.BLOCKED),
            ("Response status code does not indicate success: 429 (Too Many Requests)", FailureKind.RATE_LIMITED),
            ("401 Unauthorized", FailureKind.UNAUTHORIZED),
            ("404 Not Found", FailureKind.NOT_FOUND),
            ("500 Internal Server Error", FailureKind.SERVER_ERROR),
            ("502 Bad Gateway", FailureKind.BAD_GATEWAY),
            ("503 Service Unavailable", FailureKind.SERVICE_UNAVAILABLE),
            ("Connection reset by peer", FailureKind.NETWORK_ERROR),
            ("", FailureKind.NETWORK_ERROR),
        ],
    )
    def test_classify_failure(self, message, kind):
        assert classify_failure(message) is kind

    def test_first_rule_wins(self):
        # Mentions both 403 and 404; blocked is checked first.
        assert classify_failure("403 on /404.html") is FailureKind.BLOCKED

    def test_from_status(self):
        failure = ClassifiedNetworkFailure.from_status(429, "Too Many Requests", "GET HTML")
        assert failure.kind is FailureKind.RATE_LIMITED
        assert failure.status == 429


@pytest.mark.unit
class TestRetryOrchestrator:
    @pytest.fixture
    def pool(self):
        return make_pool(3)

    @pytest.fixture
    def orchestrator(self, pool, observer, fake_sleep):
        return RetryOrchestrator(pool, observer, rng=random.Random(5), sleep=fake_sleep)

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self, orchestrator, observer, sleeps):
        async def action(client):
            return client.proxy_id

        result = await orchestrator.execute(action, URL, RequestKind.GET_HTML)

        assert result == "10.0.1.0:9000"
        assert statuses(observer) == [RequestStatus.PENDING, RequestStatus.SUCCESS]
        assert sleeps == []
        assert all(entry.kind is RequestKind.GET_HTML and entry.url == URL for entry in observer.entries)

    @pytest.mark.asyncio
    async def test_failed_client_is_deactivated_and_next_one_used(self, orchestrator, pool, observer, sleeps):
        used = []

        async def action(client):
            used.append(client)
            if len(used) == 1:
                raise ClassifiedNetworkFailure("500 Internal Server Error")
            return "ok"

        assert await orchestrator.execute(action, URL, RequestKind.GET_HTML) == "ok"

        assert used[0] is not used[1]
        assert pool.active_count == 2
        assert statuses(observer) == [
            RequestStatus.PENDING,
            RequestStatus.FAILED,
            RequestStatus.DELAYING,
            RequestStatus.PENDING,
            RequestStatus.SUCCESS,
        ]
        # One backoff wait, no extra cool-down for a server error.
        assert len(sleeps) == 1
        assert 1.5 + 0.5 <= sleeps[0] < 1.5 + 2.0

    @pytest.mark.asyncio
    async def test_blocked_adds_cool_down(self, orchestrator, sleeps):
        calls = 0

        async def action(client):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ClassifiedNetworkFailure.from_status(403, "Forbidden")
            return "ok"

        await orchestrator.execute(action, URL, RequestKind.GET_HTML)

        assert len(sleeps) == 2
        assert 6.0 <= sleeps[0] < 10.0  # blocked cool-down after attempt 0
        assert 2.0 <= sleeps[1] < 3.5  # backoff before attempt 1

    @pytest.mark.asyncio
    async def test_timeout_path(self, orchestrator, observer, pool, sleeps):
        calls = 0

        async def action(client):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RequestTimeout("timed out")
            return "ok"

        await orchestrator.execute(action, URL, RequestKind.GET_JSON)

        assert RequestStatus.TIMEOUT in statuses(observer)
        assert pool.active_count == 2
        assert 2.5 <= sleeps[0] < 4.0

    @pytest.mark.asyncio
    async def test_all_proxies_failed(self, orchestrator, observer, pool, sleeps):
        async def action(client):
            raise aiohttp.ClientConnectionError("Connection refused")

        with metric_delta(METRICS["requests_total"].labels(kind="POST", status="Failed"), 4):
            with pytest.raises(AllProxiesFailed) as exc_info:
                await orchestrator.execute(action, URL, RequestKind.POST)

        assert exc_info.value.url == URL
        assert exc_info.value.attempts == 3
        assert pool.active_count == 0
        assert statuses(observer)[-1] is RequestStatus.FAILED
        assert statuses(observer).count(RequestStatus.PENDING) == 3
        assert len(sleeps) == 2

    @pytest.mark.asyncio
    async def test_budget_fixed_at_call_start(self, pool, observer, fake_sleep):
        await pool.deactivate(pool.clients[0])
        orchestrator = RetryOrchestrator(pool, observer, sleep=fake_sleep)
        attempts = 0

        async def action(client):
            nonlocal attempts
            attempts += 1
            raise ClassifiedNetworkFailure("502 Bad Gateway")

        with pytest.raises(AllProxiesFailed):
            await orchestrator.execute(action, URL, RequestKind.GET_HTML)
        assert attempts == 2

    @pytest.mark.asyncio
    async def test_no_active_proxies(self, pool, orchestrator):
        for client in pool.clients:
            await pool.deactivate(client)

        async def action(client):
            raise AssertionError("must not be called")

        with pytest.raises(NoActiveProxies):
            await orchestrator.execute(action, URL, RequestKind.GET_HTML)

    @pytest.mark.asyncio
    async def test_malformed_payload_is_not_retried(self, orchestrator, observer, pool):
        attempts = 0

        async def action(client):
            nonlocal attempts
            attempts += 1
            raise MalformedPayload(URL, "invalid JSON")

        with pytest.raises(MalformedPayload):
            await orchestrator.execute(action, URL, RequestKind.GET_JSON)

        assert attempts == 1
        assert pool.active_count == 3
        assert statuses(observer) == [RequestStatus.PENDING, RequestStatus.ERROR]

    @pytest.mark.asyncio
    async def test_unexpected_error_is_retried(self, orchestrator, observer):
        attempts = 0

        async def action(client):
            nonlocal attempts
            attempts += 1
            if attempts == 1:
                raise KeyError("boom")
            return "ok"

        assert await orchestrator.execute(action, URL, RequestKind.GET_HTML) == "ok"
        assert RequestStatus.ERROR in statuses(observer)

    @pytest.mark.asyncio
    async def test_cancelled_before_first_attempt(self, orchestrator, observer):
        cancel = CancellationToken()
        cancel.cancel()

        async def action(client):
            raise AssertionError("must not be called")

        with pytest.raises(CrawlCancelled):
            await orchestrator.execute(action, URL, RequestKind.GET_HTML, cancel)
        assert statuses(observer) == [RequestStatus.CANCELLED]

    @pytest.mark.asyncio
    async def test_cancellation_after_failure_stops_retries(self, pool, observer):
        cancel = CancellationToken()
        attempts = 0

        async def action(client):
            nonlocal attempts
            attempts += 1
            cancel.cancel()
            raise ClassifiedNetworkFailure("503 Service Unavailable")

        orchestrator = RetryOrchestrator(pool, observer, rng=random.Random(1))
        with pytest.raises(CrawlCancelled):
            await asyncio.wait_for(orchestrator.execute(action, URL, RequestKind.GET_HTML, cancel), timeout=1)

        assert attempts == 1
        assert statuses(observer)[-1] is RequestStatus.CANCELLED

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "failure",
        [
            lambda: ClassifiedNetworkFailure.from_status(403, "Forbidden"),
            lambda: RequestTimeout("timed out"),
        ],
        ids=["blocked", "timeout"],
    )
    async def test_cancellation_during_cool_down_is_logged(self, pool, observer, fake_sleep, sleeps, failure):
        cancel = CancellationToken()
        attempts = 0

        async def action(client):
            nonlocal attempts
            attempts += 1
            cancel.cancel()
            raise failure()

        orchestrator = RetryOrchestrator(pool, observer, rng=random.Random(1), sleep=fake_sleep)
        with pytest.raises(CrawlCancelled):
            await orchestrator.execute(action, URL, RequestKind.GET_HTML, cancel)

        assert attempts == 1
        assert sleeps == []
        assert statuses(observer)[-1] is RequestStatus.CANCELLED
        assert statuses(observer).count(RequestStatus.CANCELLED) == 1
