"""
Realistic browser fingerprints for proxy-bound clients.

Each client gets one fingerprint at construction time and keeps it for its
whole lifetime, so a proxy IP is always seen with the same browser.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, Optional

USER_AGENTS = (
    # Chrome
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/119.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    # Firefox
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:120.0) Gecko/20100101 Firefox/120.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:109.0) Gecko/20100101 Firefox/119.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:120.0) Gecko/20100101 Firefox/120.0",
    # Safari
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.1 Safari/605.1.15",
    # Edge
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.0.0",
)

ACCEPT_LANGUAGES = (
    "uk-UA,uk;q=0.9,en-US;q=0.8,en;q=0.7",
    "uk,en-US;q=0.9,en;q=0.8",
    "en-US,en;q=0.9",
    "en-US,en;q=0.9,uk;q=0.8",
)

ACCEPT_HTML = "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8"

# br is left out: aiohttp only decodes it when Brotli is installed.
ACCEPT_ENCODING = "gzip, deflate"


@dataclass(frozen=True)
class BrowserFingerprint:
    """User-agent plus the companion headers a real browser would send."""

    user_agent: str
    accept_language: str
    sec_fetch: bool = False

    def headers(self) -> Dict[str, str]:
        headers = {
            "User-Agent": self.user_agent,
            "Accept": ACCEPT_HTML,
            "Accept-Language": self.accept_language,
            "Accept-Encoding": ACCEPT_ENCODING,
            "DNT": "1",
            "Connection": "keep-alive",
            "Upgrade-Insecure-Requests": "1",
        }
        if self.sec_fetch:
            headers.update(
                {
                    "Sec-Fetch-Dest": "document",
                    "Sec-Fetch-Mode": "navigate",
                    "Sec-Fetch-Site": "none",
                    "Sec-Fetch-User": "?1",
                }
            )
        return headers


def random_fingerprint(rng: Optional[random.Random] = None) -> BrowserFingerprint:
    """Pick a fingerprint for a new client."""
    rng = rng or random.Random()
    return BrowserFingerprint(
        user_agent=rng.choice(USER_AGENTS),
        accept_language=rng.choice(ACCEPT_LANGUAGES),
        sec_fetch=rng.randrange(2) == 0,
    )
