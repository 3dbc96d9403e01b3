"""
Shared fixtures for the VstupCore test-suite.

Network access is never needed: pipeline tests use ``tests.helpers.FakeHttpClient``
and client-level tests mock aiohttp with ``aioresponses``.
"""

import random
from pathlib import Path
from typing import List

import pytest

from vstupcore.cancellation import CancellationToken
from vstupcore.config.config import CrawlerConfig, SQLiteConfig
from vstupcore.observability.observers import RecordingObserver
from vstupcore.storage import RecordStores, SQLiteManager

BASE_URL = "https://vstup.example"
API_URL = f"{BASE_URL}/api/"

PROXY_LINES = [
    "10.0.0.1:8001:alice:secret1",
    "10.0.0.2:8002:bob:secret2",
    "10.0.0.3:8003:carol:secret3",
]


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def proxy_file(tmp_path: Path) -> Path:
    path = tmp_path / "proxies.txt"
    path.write_text("\n".join(PROXY_LINES) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def crawler_config() -> CrawlerConfig:
    return CrawlerConfig(base_url=BASE_URL, api_url=API_URL)


@pytest.fixture
def memory_stores() -> RecordStores:
    return RecordStores.in_memory()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps):
    """Records requested sleeps instead of waiting, still honouring cancellation."""

    async def _sleep(seconds: float, cancel: CancellationToken) -> None:
        cancel.raise_if_cancelled()
        sleeps.append(seconds)

    return _sleep


@pytest.fixture
async def sqlite_manager(tmp_path: Path):
    manager = SQLiteManager(SQLiteConfig(db_path=tmp_path / "db" / "vstup.db"))
    await manager.initialize()
    yield manager
    await manager.close()
