"""
Tests for the GET-HTML, GET-JSON and POST wrappers, with aiohttp mocked by aioresponses.
"""

import random

import pytest
from aioresponses import aioresponses
from yarl import URL

from vstupcore.crawler.http_client import JSON_ACCEPT, HttpClient, decode_json
from vstupcore.crawler.proxy_pool import ProxyPool
from vstupcore.crawler.response import RawResponse
from vstupcore.crawler.retry import RetryOrchestrator
from vstupcore.errors import AllProxiesFailed, MalformedPayload
from vstupcore.extractor import ApiRedirect, ApplicationsPayload
from vstupcore.protocols import RequestKind, RequestStatus

PAGE = "https://vstup.example/y2024/r27/"
API = "https://vstup.example/api/"
LIST = "https://vstup.example/lists/abc.json"


@pytest.mark.unit
class TestHttpClient:
    @pytest.fixture
    async def pool(self, proxy_file):
        pool = ProxyPool.from_file(proxy_file, rng=random.Random(3))
        yield pool
        await pool.close()

    @pytest.fixture
    def client(self, pool, observer, fake_sleep):
        orchestrator = RetryOrchestrator(pool, observer, rng=random.Random(4), sleep=fake_sleep)
        return HttpClient(orchestrator, rng=random.Random(5))

    @pytest.mark.asyncio
    async def test_get_html_goes_through_the_proxy(self, client, observer):
        with aioresponses() as m:
            m.get(PAGE, status=200, body="<html>Київ</html>")
            html = await client.get_html(PAGE)

            assert html == "<html>Київ</html>"
            (call,) = m.requests[("GET", URL(PAGE))]
            assert call.kwargs["proxy"] == "http://10.0.0.1:8001"
            assert call.kwargs["proxy_auth"].login == "alice"

        assert [e.status for e in observer.entries] == [RequestStatus.PENDING, RequestStatus.SUCCESS]
        assert observer.entries[-1].kind is RequestKind.GET_HTML

    @pytest.mark.asyncio
    async def test_get_html_retries_blocked_response_on_next_proxy(self, client, pool, sleeps):
        with aioresponses() as m:
            m.get(PAGE, status=403)
            m.get(PAGE, status=200, body="ok")
            assert await client.get_html(PAGE) == "ok"

            proxies = [call.kwargs["proxy"] for call in m.requests[("GET", URL(PAGE))]]

        # The cursor keeps advancing over the remaining active proxies.
        assert proxies == ["http://10.0.0.1:8001", "http://10.0.0.3:8003"]
        assert pool.active_count == 2
        # Blocked cool-down, then the regular backoff.
        assert len(sleeps) == 2

    @pytest.mark.asyncio
    async def test_get_html_exhausts_budget(self, client, pool):
        with aioresponses() as m:
            m.get(PAGE, status=500, repeat=True)
            with pytest.raises(AllProxiesFailed):
                await client.get_html(PAGE)
        assert pool.active_count == 0

    @pytest.mark.asyncio
    async def test_get_json_decodes_case_insensitive_fields(self, client):
        with aioresponses() as m:
            m.get(LIST, status=200, payload={"Requests": [[1, 2, 3, 4, "Іван Петренко", 187.5]], "Other": 1})
            payload = await client.get_json(LIST, ApplicationsPayload)

            (call,) = m.requests[("GET", URL(LIST))]
            assert call.kwargs["headers"]["Accept"] == JSON_ACCEPT

        assert payload.requests == [[1, 2, 3, 4, "Іван Петренко", 187.5]]

    @pytest.mark.asyncio
    async def test_get_json_null_body(self, client):
        with aioresponses() as m:
            m.get(LIST, status=200, body="null", content_type="application/json")
            assert await client.get_json(LIST, ApplicationsPayload) is None

    @pytest.mark.asyncio
    async def test_get_json_malformed_is_not_retried(self, client, pool, observer):
        with aioresponses() as m:
            m.get(LIST, status=200, body="<html>not json</html>", repeat=True)
            with pytest.raises(MalformedPayload):
                await client.get_json(LIST, ApplicationsPayload)

            assert len(m.requests[("GET", URL(LIST))]) == 1
        assert pool.active_count == 3
        assert observer.entries[-1].status is RequestStatus.ERROR

    @pytest.mark.asyncio
    async def test_post_form_returns_non_blocking_errors(self, client):
        with aioresponses() as m:
            m.post(API, status=500, body="oops")
            response = await client.post_form(API, {"action": "requests", "y": "24"})

            (call,) = m.requests[("POST", URL(API))]
            assert call.kwargs["data"] == {"action": "requests", "y": "24"}

        assert response.status == 500
        assert not response.ok

    @pytest.mark.asyncio
    async def test_post_form_retries_rate_limited(self, client, pool):
        with aioresponses() as m:
            m.post(API, status=429)
            m.post(API, status=200, payload={"url": "/lists/abc.json"})
            response = await client.post_form(API, {"action": "requests"})

        assert decode_json(response, ApiRedirect).url == "/lists/abc.json"
        assert pool.active_count == 2


@pytest.mark.unit
class TestDecodeJson:
    def test_bom_is_tolerated(self):
        response = RawResponse(status=200, url=API, body=b'\xef\xbb\xbf{"Url": "/x"}')
        assert decode_json(response, ApiRedirect).url == "/x"

    def test_shape_mismatch(self):
        response = RawResponse(status=200, url=LIST, body=b'{"requests": "nope"}')
        with pytest.raises(MalformedPayload):
            decode_json(response, ApplicationsPayload)
