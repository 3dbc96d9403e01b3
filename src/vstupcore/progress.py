"""
Crawl progress counters and the snapshots built from them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Tuple

from vstupcore.config.config import CrawlerConfig
from vstupcore.protocols import ProgressSnapshot

if TYPE_CHECKING:
    from vstupcore.storage import RecordStores

STAGE_NAMES = ("Cities", "Universities", "Offers", "Applications")
COMPLETED = "Completed"


@dataclass
class StageCounter:
    name: str
    parsed: int = 0
    total: int = 0

    def grow_total(self, total: int) -> None:
        """Raise the estimate; totals never shrink."""
        self.total = max(self.total, total)

    def mark_parsed(self, count: int = 1) -> None:
        self.parsed += count
        self.grow_total(self.parsed)

    @property
    def done(self) -> bool:
        return self.parsed >= self.total


class ProgressTracker:
    """Parsed and total counts for the four crawl stages.

    Totals of the later stages start at configured floors so the overall
    percentage does not read 100% before real counts are known.
    """

    def __init__(self) -> None:
        self.cities = StageCounter("Cities")
        self.universities = StageCounter("Universities")
        self.offers = StageCounter("Offers")
        self.applications = StageCounter("Applications")
        self.completed = False

    @property
    def stages(self) -> Tuple[StageCounter, ...]:
        return (self.cities, self.universities, self.offers, self.applications)

    async def seed_from_store(self, stores: "RecordStores", config: CrawlerConfig) -> None:
        """Sync parsed counts with what is already persisted."""
        self.completed = False
        self.cities.parsed = await stores.cities.count()
        self.universities.parsed = await stores.universities.count()
        self.offers.parsed = await stores.offers.count()
        self.applications.parsed = await stores.applications.distinct_count("offer_id")

        self.cities.grow_total(self.cities.parsed)
        self.universities.grow_total(max(self.universities.parsed, config.universities_floor))
        self.offers.grow_total(max(self.offers.parsed, config.offers_floor))
        self.applications.grow_total(max(self.applications.parsed, config.applications_floor))

    def finalize(self) -> None:
        """Mark the crawl finished; estimated totals are left as they are."""
        self.completed = True

    @property
    def percentage(self) -> float:
        total = sum(stage.total for stage in self.stages)
        if total <= 0:
            return 0.0
        parsed = sum(stage.parsed for stage in self.stages)
        return min(100.0, 100.0 * parsed / total)

    @property
    def current_stage(self) -> str:
        if self.completed:
            return COMPLETED
        for stage in self.stages:
            if not stage.done:
                return stage.name
        return COMPLETED

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            total_cities=self.cities.total,
            parsed_cities=self.cities.parsed,
            total_universities=self.universities.total,
            parsed_universities=self.universities.parsed,
            total_offers=self.offers.total,
            parsed_offers=self.offers.parsed,
            total_applications=self.applications.total,
            parsed_applications=self.applications.parsed,
            overall_percentage=self.percentage,
            current_stage=self.current_stage,
        )

    def as_rows(self) -> List[Tuple[str, int, int]]:
        return [(stage.name, stage.parsed, stage.total) for stage in self.stages]
