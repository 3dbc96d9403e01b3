"""
Defines and manages Prometheus metrics for the crawler.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

import structlog
from prometheus_client import REGISTRY as _PROM_REGISTRY
from prometheus_client import Counter as _OrigCounter
from prometheus_client import Gauge as _OrigGauge
from prometheus_client import Histogram as _OrigHistogram
from prometheus_client import start_http_server

if TYPE_CHECKING:
    from vstupcore.config.config import MonitoringConfig

logger = structlog.get_logger(__name__)


def _duplicate_safe_factory(metric_cls):
    """Return a factory that reuses an existing collector if already present."""

    def _factory(name: str, documentation: str, *args, **kwargs):  # type: ignore[override]
        existing = _PROM_REGISTRY._names_to_collectors.get(name)
        if existing is not None:
            return existing  # type: ignore[return-value]

        try:
            return metric_cls(name, documentation, *args, **kwargs)  # type: ignore[call-arg]
        except ValueError:
            # Registration lost the race, fall back to the now-existing collector.
            return _PROM_REGISTRY._names_to_collectors[name]  # type: ignore[return-value]

    return _factory


Counter = _duplicate_safe_factory(_OrigCounter)  # type: ignore[assignment]
Gauge = _duplicate_safe_factory(_OrigGauge)  # type: ignore[assignment]
Histogram = _duplicate_safe_factory(_OrigHistogram)  # type: ignore[assignment]


def _create_metrics() -> Dict[str, Any]:
    return {
        "requests_total": Counter(
            "vstup_requests_total",
            "Request attempts by kind and outcome",
            ["kind", "status"],
        ),
        "request_duration_seconds": Histogram(
            "vstup_request_duration_seconds",
            "Duration of individual request attempts",
            ["kind"],
        ),
        "active_proxies": Gauge(
            "vstup_active_proxies",
            "Proxy clients still in rotation",
        ),
        "records_persisted_total": Counter(
            "vstup_records_persisted_total",
            "Records committed to the store",
            ["entity"],
        ),
    }


METRICS: Dict[str, Any] = _create_metrics()


def start_metrics_server(config: MonitoringConfig) -> bool:
    """Expose METRICS over HTTP when a Prometheus port is configured."""
    if config.prometheus_port is None:
        return False
    start_http_server(config.prometheus_port)
    logger.info("Prometheus exporter started", port=config.prometheus_port)
    return True
