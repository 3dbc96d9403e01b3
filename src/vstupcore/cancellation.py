"""
Cooperative cancellation shared by every suspension point of a crawl.
"""

from __future__ import annotations

import asyncio

from vstupcore.errors import CrawlCancelled


class CancellationToken:
    """A one-shot cancellation signal backed by an asyncio.Event."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CrawlCancelled()

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancellation is requested first."""
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise CrawlCancelled()
