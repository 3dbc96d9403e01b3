"""
GET-HTML, GET-JSON and POST wrappers over the retry orchestrator.
"""

from __future__ import annotations

import random
from typing import Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from vstupcore.cancellation import CancellationToken
from vstupcore.crawler.headers import compose_request_headers
from vstupcore.crawler.proxy_pool import ProxyClient
from vstupcore.crawler.response import RawResponse
from vstupcore.crawler.retry import RetryOrchestrator
from vstupcore.errors import ClassifiedNetworkFailure, MalformedPayload
from vstupcore.protocols import RequestKind

M = TypeVar("M", bound=BaseModel)

# Statuses that mean the proxy itself is unwelcome, checked for every request kind.
BLOCKING_STATUSES = {401, 403, 429}

JSON_ACCEPT = "application/json, text/plain, */*"


def raise_for_blocking(response: RawResponse, kind: RequestKind) -> None:
    if response.status in BLOCKING_STATUSES:
        raise ClassifiedNetworkFailure.from_status(response.status, response.reason, kind.value)


def raise_for_status(response: RawResponse, kind: RequestKind) -> None:
    raise_for_blocking(response, kind)
    if not response.ok:
        raise ClassifiedNetworkFailure.from_status(response.status, response.reason, kind.value)


class HttpClient:
    """Issues requests through proxy clients with per-request header variation."""

    def __init__(self, orchestrator: RetryOrchestrator, *, rng: Optional[random.Random] = None) -> None:
        self.orchestrator = orchestrator
        self.rng = rng or random.Random()

    async def get_html(self, url: str, cancel: Optional[CancellationToken] = None) -> str:
        """Fetch ``url`` and return the body as text; non-2xx statuses are failures."""

        async def action(client: ProxyClient) -> str:
            headers = compose_request_headers(url, self.rng)
            response = await client.request("GET", url, headers=headers)
            raise_for_status(response, RequestKind.GET_HTML)
            return response.text()

        return await self.orchestrator.execute(action, url, RequestKind.GET_HTML, cancel)

    async def get_json(self, url: str, model: Type[M], cancel: Optional[CancellationToken] = None) -> Optional[M]:
        """Fetch ``url`` and decode it into ``model``.

        Returns None for a literal ``null`` body.

        Raises:
            MalformedPayload: If the body is not JSON or does not fit ``model``.
        """

        async def action(client: ProxyClient) -> Optional[M]:
            headers = compose_request_headers(url, self.rng)
            headers["Accept"] = JSON_ACCEPT
            response = await client.request("GET", url, headers=headers)
            raise_for_status(response, RequestKind.GET_JSON)
            return decode_json(response, model)

        return await self.orchestrator.execute(action, url, RequestKind.GET_JSON, cancel)

    async def post_form(
        self,
        url: str,
        fields: Mapping[str, str],
        cancel: Optional[CancellationToken] = None,
    ) -> RawResponse:
        """POST ``fields`` form-encoded. The status is left for the caller to judge."""

        async def action(client: ProxyClient) -> RawResponse:
            headers = compose_request_headers(url, self.rng)
            response = await client.request("POST", url, headers=headers, data=dict(fields))
            raise_for_blocking(response, RequestKind.POST)
            return response

        return await self.orchestrator.execute(action, url, RequestKind.POST, cancel)


def decode_json(response: RawResponse, model: Type[M]) -> Optional[M]:
    try:
        data = response.json()
    except ValueError as e:
        raise MalformedPayload(response.url, f"invalid JSON: {e}") from e
    if data is None:
        return None
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedPayload(response.url, f"{e.error_count()} validation error(s)") from e
