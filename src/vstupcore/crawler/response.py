"""Fully-read HTTP response returned by proxy clients."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class RawResponse:
    """Response body is read eagerly so the connection can go back to the pool."""

    status: int
    url: str
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    reason: Optional[str] = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding, errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON; raises ValueError on invalid content."""
        return json.loads(self.body.decode("utf-8-sig"))
