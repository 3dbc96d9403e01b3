"""
VstupCore - resilient, resumable crawler for Ukrainian admissions data.
"""

from __future__ import annotations

__version__ = "0.1.0"

from vstupcore.cancellation import CancellationToken
from vstupcore.config import Config
from vstupcore.container import DependencyContainer
from vstupcore.pipeline import CrawlPipeline, PipelineStage

__all__ = [
    "CancellationToken",
    "Config",
    "CrawlPipeline",
    "DependencyContainer",
    "PipelineStage",
    "__version__",
]
