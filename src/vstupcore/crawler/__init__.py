"""
VstupCore Crawler Module - proxy rotation and resilient requests.

Key pieces:
- Proxy pool with per-client browser fingerprints
- Retry orchestration with failure classification and backoff
- Per-request anti-detection header composition
- GET-HTML, GET-JSON and POST request wrappers
"""

from .fingerprints import BrowserFingerprint, random_fingerprint
from .headers import compose_request_headers
from .http_client import HttpClient
from .proxy_pool import ProxyClient, ProxyCredentials, ProxyPool, load_proxy_file, parse_proxy_line
from .response import RawResponse
from .retry import RetryOrchestrator, backoff_delay_ms

__all__ = [
    "BrowserFingerprint",
    "HttpClient",
    "ProxyClient",
    "ProxyCredentials",
    "ProxyPool",
    "RawResponse",
    "RetryOrchestrator",
    "backoff_delay_ms",
    "compose_request_headers",
    "load_proxy_file",
    "parse_proxy_line",
    "random_fingerprint",
]
