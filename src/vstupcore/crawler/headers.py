"""
Per-request header variation that keeps consecutive requests from looking
identical.
"""

from __future__ import annotations

import random
from typing import Dict, List
from urllib.parse import quote, urlparse

SEARCH_ENGINE_URLS = (
    "https://www.google.com/search?q={}",
    "https://www.bing.com/search?q={}",
)
CACHE_CONTROL_VALUES = ("no-cache", "max-age=0", "no-store")


def referer_candidates(url: str, rng: random.Random) -> List[str]:
    """The five referer choices for ``url``; the empty string means no referer."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return [""]
    origin = f"{parsed.scheme}://{parsed.netloc}"
    search = rng.choice(SEARCH_ENGINE_URLS).format(quote(parsed.hostname or parsed.netloc, safe=""))
    return [search, origin, f"{origin}/", f"{origin}/home", ""]


def compose_request_headers(url: str, rng: random.Random) -> Dict[str, str]:
    """Build the per-request header set for ``url``.

    Pure apart from draws on ``rng``; a seeded generator reproduces the same
    headers.
    """
    headers: Dict[str, str] = {}

    referer = rng.choice(referer_candidates(url, rng))
    if referer:
        headers["Referer"] = referer

    if rng.randrange(3) == 0:
        headers["Cache-Control"] = rng.choice(CACHE_CONTROL_VALUES)

    if rng.randrange(4) == 0:
        headers["Pragma"] = "no-cache"

    if rng.randrange(2) == 0:
        headers["Sec-Fetch-Dest"] = "document"
        headers["Sec-Fetch-Mode"] = "navigate"
        headers["Sec-Fetch-Site"] = "same-origin"

    return headers
