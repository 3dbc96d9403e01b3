"""
Dependency container wiring the proxy pool, record stores and crawl pipeline.
"""

from __future__ import annotations

import random
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, Generic, Optional, TypeVar
from uuid import uuid4

import structlog

from vstupcore.config import Config, load_config
from vstupcore.crawler.http_client import HttpClient
from vstupcore.crawler.proxy_pool import ProxyPool
from vstupcore.crawler.retry import RetryOrchestrator
from vstupcore.observability.logging import configure_logging
from vstupcore.observability.metrics import start_metrics_server
from vstupcore.observability.observers import LoggingObserver
from vstupcore.pipeline import CrawlPipeline
from vstupcore.protocols import CrawlObserver
from vstupcore.storage import RecordStores, SQLiteManager

T = TypeVar("T")


class LazyInstance(Generic[T]):
    """Lazy-loaded instance with lifecycle management."""

    def __init__(self, factory: Callable[..., T], *args: Any, **kwargs: Any) -> None:
        self._factory = factory
        self._args = args
        self._kwargs = kwargs
        self._instance: Optional[T] = None

    async def get(self) -> T:
        """Get or create the instance, calling its ``initialize`` once."""
        if self._instance is None:
            instance = self._factory(*self._args, **self._kwargs)
            initialize = getattr(instance, "initialize", None)
            if callable(initialize):
                await initialize()
            self._instance = instance
        return self._instance

    async def cleanup(self) -> None:
        close = getattr(self._instance, "close", None)
        if callable(close):
            await close()
        self._instance = None


class DependencyContainer:
    """Builds the crawl object graph from one ``Config`` and tears it down again."""

    def __init__(
        self,
        config_path: Optional[Path] = None,
        *,
        config: Optional[Config] = None,
        observer: Optional[CrawlObserver] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config_path = config_path
        self.config: Config = config or load_config(config_path)
        self.observer: CrawlObserver = observer or LoggingObserver()
        self.rng = rng or random.Random()
        self.crawl_id = str(uuid4())
        self.logger = structlog.get_logger(self.__class__.__name__)

        self._instances: Dict[str, LazyInstance[Any]] = {
            "storage": LazyInstance(SQLiteManager, self.config.storage),
            "proxy_pool": LazyInstance(
                ProxyPool.from_file,
                self.config.crawler.proxies_file,
                timeout=self.config.crawler.timeout,
                rng=self.rng,
            ),
        }
        self.is_running = False

    async def initialize(self) -> None:
        configure_logging(self.config.monitoring)
        structlog.contextvars.bind_contextvars(crawl_id=self.crawl_id)
        start_metrics_server(self.config.monitoring)
        self.is_running = True
        self.logger.info(
            "Dependency container initialized",
            config_path=str(self.config_path) if self.config_path else "default",
            db_path=str(self.config.storage.db_path),
        )

    async def get_storage(self) -> SQLiteManager:
        return await self._instances["storage"].get()  # type: ignore[no-any-return]

    async def get_proxy_pool(self) -> ProxyPool:
        return await self._instances["proxy_pool"].get()  # type: ignore[no-any-return]

    async def get_stores(self) -> RecordStores:
        return RecordStores.sqlite(await self.get_storage())

    async def get_http_client(self) -> HttpClient:
        orchestrator = RetryOrchestrator(
            await self.get_proxy_pool(),
            self.observer,
            self.config.retry,
            rng=self.rng,
        )
        return HttpClient(orchestrator, rng=self.rng)

    async def get_pipeline(self) -> CrawlPipeline:
        return CrawlPipeline(
            await self.get_http_client(),
            await self.get_stores(),
            self.config.crawler,
            self.observer,
        )

    @asynccontextmanager
    async def lifecycle(self) -> AsyncIterator[DependencyContainer]:
        """Context manager for proper lifecycle management."""
        try:
            await self.initialize()
            yield self
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        if not self.is_running:
            return
        for name, instance in self._instances.items():
            try:
                await instance.cleanup()
            except Exception as e:
                self.logger.error(f"Error cleaning up {name}", error=str(e))
        structlog.contextvars.unbind_contextvars("crawl_id")
        self.is_running = False
        self.logger.info("Dependency container shutdown complete")
