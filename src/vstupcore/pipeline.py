"""
The four-stage crawl: Cities, Universities, Offers, Applications.

Every stage decides what to skip from the records already persisted, so a
re-run after a crash or cancellation resumes at the first unit of work not yet
in the store and issues no requests for completed units.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Callable, Dict, Optional
from urllib.parse import urljoin
from uuid import uuid4

import structlog

from vstupcore.cancellation import CancellationToken
from vstupcore.config.config import CrawlerConfig
from vstupcore.crawler.http_client import HttpClient, decode_json
from vstupcore.errors import MalformedPayload
from vstupcore.extractor import (
    ApiRedirect,
    ApplicationsPayload,
    ApplicationsRequest,
    decode_application_rows,
    extract_cities,
    extract_offers,
    extract_universities,
)
from vstupcore.models import Application, City, Offer, Person, University
from vstupcore.observability.observers import LoggingObserver
from vstupcore.progress import ProgressTracker
from vstupcore.protocols import CrawlObserver, ProgressSnapshot
from vstupcore.storage import RecordStores


class PipelineStage(Enum):
    """Pipeline states, in the only order they are visited."""

    IDLE = "Idle"
    CITIES = "Cities"
    UNIVERSITIES = "Universities"
    OFFERS = "Offers"
    APPLICATIONS = "Applications"
    COMPLETED = "Completed"


def _new_id() -> str:
    return str(uuid4())


class CrawlPipeline:
    """Sequential, resumable crawl of the admissions site."""

    def __init__(
        self,
        client: HttpClient,
        stores: RecordStores,
        config: Optional[CrawlerConfig] = None,
        observer: Optional[CrawlObserver] = None,
        *,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self.client = client
        self.stores = stores
        self.config = config or CrawlerConfig()
        self.observer = observer or LoggingObserver()
        self.id_factory = id_factory
        self.stage = PipelineStage.IDLE
        self.progress = ProgressTracker()
        self.logger = structlog.get_logger(self.__class__.__name__)

    async def run(self, cancel: Optional[CancellationToken] = None) -> ProgressSnapshot:
        """Run every stage in order and return the final progress snapshot.

        Raises:
            CrawlCancelled: When ``cancel`` is triggered; nothing else is raised for it.
            AllProxiesFailed: A request exhausted its proxy budget.
            NoActiveProxies: Every proxy has been deactivated.
        """
        cancel = cancel or CancellationToken()
        steps = (
            (PipelineStage.CITIES, self.parse_cities),
            (PipelineStage.UNIVERSITIES, self.parse_universities),
            (PipelineStage.OFFERS, self.parse_offers),
            (PipelineStage.APPLICATIONS, self.parse_applications),
        )
        try:
            await self.progress.seed_from_store(self.stores, self.config)
            self._emit_progress()
            for stage, step in steps:
                cancel.raise_if_cancelled()
                self.stage = stage
                self.logger.info("Stage started", stage=stage.value)
                await step(cancel)
        except (Exception, asyncio.CancelledError) as e:
            # Uncommitted rows belong to an unfinished page; resuming refetches it.
            self.stores.discard_pending()
            self.logger.info("Crawl stopped", stage=self.stage.value, reason=type(e).__name__)
            raise

        self.stage = PipelineStage.COMPLETED
        self.progress.finalize()
        snapshot = self._emit_progress()
        self.logger.info("Crawl completed", **{name.lower(): parsed for name, parsed, _ in self.progress.as_rows()})
        return snapshot

    def _emit_progress(self) -> ProgressSnapshot:
        snapshot = self.progress.snapshot()
        self.observer.on_progress(snapshot)
        return snapshot

    def _url(self, request_parameter: str) -> str:
        return urljoin(self.config.base_url + "/", request_parameter)

    async def parse_cities(self, cancel: CancellationToken) -> None:
        counter = self.progress.cities
        cancel.raise_if_cancelled()
        if await self.stores.cities.exists():
            counter.parsed = await self.stores.cities.count()
            counter.grow_total(counter.parsed)
            self.logger.info("Cities already stored, skipping", count=counter.parsed)
            self._emit_progress()
            return

        html = await self.client.get_html(self.config.base_url, cancel)
        links = extract_cities(html)
        counter.grow_total(counter.parsed + len(links))
        for link in links:
            cancel.raise_if_cancelled()
            self.stores.cities.add(City(id=self.id_factory(), name=link.text, request_parameter=link.href))
            counter.mark_parsed()
            self._emit_progress()
        await self.stores.cities.commit()
        self.logger.info("Cities stored", count=len(links))

    async def parse_universities(self, cancel: CancellationToken) -> None:
        counter = self.progress.universities
        capital = self.config.capital_city
        cities = [city for city in await self.stores.cities.all() if capital is None or city.name == capital]
        if not cities:
            self.logger.warning("No city matches the capital-city filter", capital_city=capital)

        for city in cities:
            cancel.raise_if_cancelled()
            if await self.stores.universities.exists(city_id=city.id):
                continue
            if not city.request_parameter:
                self.logger.debug("City has no link, skipping", city=city.name)
                continue

            html = await self.client.get_html(self._url(city.request_parameter), cancel)
            links = extract_universities(html)
            counter.grow_total(counter.parsed + len(links))
            for link in links:
                cancel.raise_if_cancelled()
                self.stores.universities.add(
                    University(id=self.id_factory(), city_id=city.id, name=link.text, request_parameter=link.href)
                )
                counter.mark_parsed()
            await self.stores.universities.commit()
            self.logger.info("Universities stored", city=city.name, count=len(links))
            self._emit_progress()

    async def parse_offers(self, cancel: CancellationToken) -> None:
        counter = self.progress.offers
        for university in await self.stores.universities.all():
            cancel.raise_if_cancelled()
            if await self.stores.offers.exists(university_id=university.id):
                continue
            if not university.request_parameter:
                self.logger.debug("University has no link, skipping", university=university.name)
                continue

            html = await self.client.get_html(self._url(university.request_parameter), cancel)
            links = extract_offers(html, self.config.master_marker)
            counter.grow_total(counter.parsed + len(links))
            for link in links:
                cancel.raise_if_cancelled()
                self.stores.offers.add(
                    Offer(
                        id=self.id_factory(),
                        university_id=university.id,
                        speciality=link.text,
                        request_parameter=link.href,
                    )
                )
                counter.mark_parsed()
            await self.stores.offers.commit()
            self.logger.info("Offers stored", university=university.name, count=len(links))
            self._emit_progress()

    async def parse_applications(self, cancel: CancellationToken) -> None:
        counter = self.progress.applications
        offers = await self.stores.offers.all()
        counter.grow_total(len(offers))

        for offer in offers:
            cancel.raise_if_cancelled()
            if await self.stores.applications.exists(offer_id=offer.id):
                continue

            request = ApplicationsRequest.from_request_parameter(offer.request_parameter)
            if request is None:
                self.logger.debug("Malformed offer link, skipping", offer_id=offer.id, link=offer.request_parameter)
            else:
                try:
                    await self._parse_offer_applications(offer, request, cancel)
                except MalformedPayload as e:
                    self.logger.warning("Unreadable applications payload, skipping", offer_id=offer.id, error=str(e))
            counter.mark_parsed()
            self._emit_progress()

    async def _parse_offer_applications(
        self,
        offer: Offer,
        request: ApplicationsRequest,
        cancel: CancellationToken,
    ) -> int:
        response = await self.client.post_form(
            self.config.api_url, request.form_fields(self.config.applications_last), cancel
        )
        redirect = decode_json(response, ApiRedirect) if response.ok else None
        if redirect is None or not redirect.url:
            self.logger.debug("No ranked list for offer", offer_id=offer.id, status=response.status)
            return 0

        cancel.raise_if_cancelled()
        payload = await self.client.get_json(self._url(redirect.url), ApplicationsPayload, cancel)
        if payload is None:
            return 0

        persons: Dict[str, Person] = {}
        rows = decode_application_rows(payload.requests)
        for row in rows:
            cancel.raise_if_cancelled()
            person = await self._find_or_create_person(row.name, persons)
            self.stores.applications.add(
                Application(
                    id=self.id_factory(),
                    offer_id=offer.id,
                    person_id=person.id,
                    grade=row.grade,
                    request_parameter=offer.request_parameter,
                )
            )
        # Persons first: applications reference them.
        await self.stores.persons.commit()
        await self.stores.applications.commit()
        self.logger.debug("Applications stored", offer_id=offer.id, count=len(rows))
        return len(rows)

    async def _find_or_create_person(self, full_name: str, created: Dict[str, Person]) -> Person:
        person = created.get(full_name)
        if person is None:
            person = await self.stores.persons.find(full_name=full_name)
        if person is None:
            person = Person(id=self.id_factory(), full_name=full_name)
            self.stores.persons.add(person)
        created[full_name] = person
        return person
