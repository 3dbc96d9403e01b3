"""
Pool of proxy-bound HTTP clients with round-robin selection over the clients
that are still active.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import aiohttp
import structlog

from vstupcore.crawler.fingerprints import BrowserFingerprint, random_fingerprint
from vstupcore.crawler.response import RawResponse
from vstupcore.errors import ConfigurationError, NoActiveProxies, RequestTimeout
from vstupcore.observability.metrics import METRICS

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True)
class ProxyCredentials:
    """One line of the proxy credential file."""

    host: str
    port: int
    username: str
    password: str

    @property
    def proxy_id(self) -> str:
        """Identifier safe to log: never includes the credentials."""
        return f"{self.host}:{self.port}"

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @property
    def auth(self) -> aiohttp.BasicAuth:
        return aiohttp.BasicAuth(self.username, self.password)


def parse_proxy_line(line: str) -> Optional[ProxyCredentials]:
    """Parse ``host:port:username:password``; returns None for unusable lines."""
    parts = line.strip().split(":")
    if len(parts) != 4:
        return None
    host, port_text, username, password = (part.strip() for part in parts)
    if not host or not username:
        return None
    try:
        port = int(port_text)
    except ValueError:
        return None
    if not 0 < port < 65536:
        return None
    return ProxyCredentials(host=host, port=port, username=username, password=password)


def load_proxy_file(path: Path) -> List[ProxyCredentials]:
    """Read every valid proxy from ``path``.

    Blank lines and ``#`` comments are ignored, malformed lines are skipped
    with a warning.

    Raises:
        ConfigurationError: If the file does not exist.
    """
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Proxies file not found: {path}")

    proxies: List[ProxyCredentials] = []
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            stripped = line.strip()
            if not stripped or stripped.startswith("#"):
                continue
            credentials = parse_proxy_line(stripped)
            if credentials is None:
                # The raw line may hold a password; only the position is logged.
                logger.warning("Skipping malformed proxy line", path=str(path), line=line_no)
                continue
            proxies.append(credentials)
    return proxies


class ProxyClient:
    """An HTTP client bound to one proxy and one fingerprint for its lifetime."""

    def __init__(
        self,
        credentials: ProxyCredentials,
        fingerprint: BrowserFingerprint,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.credentials = credentials
        self.fingerprint = fingerprint
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None

    @property
    def proxy_id(self) -> str:
        return self.credentials.proxy_id

    def __repr__(self) -> str:
        return f"ProxyClient({self.proxy_id})"

    def _get_session(self) -> aiohttp.ClientSession:
        # Sessions must be created inside the running event loop.
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=self.fingerprint.headers(),
            )
        return self.session

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        data: Any = None,
    ) -> RawResponse:
        """Perform one exchange through the proxy and read the whole body."""
        session = self._get_session()
        start = time.monotonic()
        try:
            async with session.request(
                method,
                url,
                headers=dict(headers or {}),
                data=data,
                proxy=self.credentials.url,
                proxy_auth=self.credentials.auth,
            ) as response:
                body = await response.read()
                return RawResponse(
                    status=response.status,
                    url=str(response.url),
                    body=body,
                    headers=dict(response.headers),
                    reason=response.reason,
                    duration=time.monotonic() - start,
                )
        except asyncio.TimeoutError as e:
            raise RequestTimeout(f"Request timed out after {self.timeout}s via {self.proxy_id}") from e

    async def close(self) -> None:
        if self.session is not None and not self.session.closed:
            await self.session.close()
        self.session = None


@dataclass(eq=False)
class _PoolEntry:
    client: ProxyClient
    active: bool = True


class ProxyPool:
    """Owns a fixed set of proxy clients.

    ``acquire`` rotates over the currently active subset, so a deactivated
    client stops receiving traffic immediately. Deactivation is permanent for
    the lifetime of the pool.
    """

    def __init__(
        self,
        proxies: Sequence[ProxyCredentials],
        *,
        timeout: float = DEFAULT_TIMEOUT,
        rng: Optional[random.Random] = None,
    ) -> None:
        if not proxies:
            raise ConfigurationError("No valid proxies found.")

        rng = rng or random.Random()
        self._entries: List[_PoolEntry] = [
            _PoolEntry(ProxyClient(credentials, random_fingerprint(rng), timeout)) for credentials in proxies
        ]
        self._cursor = 0
        self._lock = asyncio.Lock()

        METRICS["active_proxies"].set(len(self._entries))
        logger.info("Proxy pool initialized", proxies_count=len(self._entries), timeout=timeout)

    @classmethod
    def from_file(
        cls,
        path: Path,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        rng: Optional[random.Random] = None,
    ) -> "ProxyPool":
        proxies = load_proxy_file(path)
        if not proxies:
            raise ConfigurationError(f"No valid proxies found in {path}")
        return cls(proxies, timeout=timeout, rng=rng)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def clients(self) -> List[ProxyClient]:
        return [entry.client for entry in self._entries]

    @property
    def active_count(self) -> int:
        """Snapshot of the number of clients still in rotation."""
        return sum(1 for entry in self._entries if entry.active)

    async def acquire(self) -> ProxyClient:
        """Return the next active client in round-robin order.

        Raises:
            NoActiveProxies: If every client has been deactivated.
        """
        async with self._lock:
            available = [entry for entry in self._entries if entry.active]
            if not available:
                raise NoActiveProxies()
            entry = available[self._cursor % len(available)]
            self._cursor += 1
            return entry.client

    async def deactivate(self, client: ProxyClient) -> bool:
        """Take ``client`` out of rotation. Returns False if it already was."""
        async with self._lock:
            for entry in self._entries:
                if entry.client is client:
                    if not entry.active:
                        return False
                    entry.active = False
                    remaining = self.active_count
                    METRICS["active_proxies"].set(remaining)
                    logger.warning("Proxy deactivated", proxy=client.proxy_id, remaining=remaining)
                    return True
            return False

    def stats(self) -> Dict[str, Any]:
        return {
            "total": len(self._entries),
            "active": [entry.client.proxy_id for entry in self._entries if entry.active],
            "disabled": [entry.client.proxy_id for entry in self._entries if not entry.active],
        }

    async def initialize(self) -> None:
        """Open every client session up front instead of on first request."""
        for entry in self._entries:
            entry.client._get_session()

    async def close(self) -> None:
        """Close every client session."""
        for entry in self._entries:
            await entry.client.close()
        logger.info("Proxy pool closed")

    async def __aenter__(self) -> "ProxyPool":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
