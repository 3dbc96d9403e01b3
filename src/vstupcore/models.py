"""Records persisted by the crawl pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class City:
    """A region page listed on the site's front page.

    Attributes:
        id: Opaque unique identifier
        name: Link text of the region
        request_parameter: Site-relative path, the seed for the universities stage
    """

    id: str
    name: str
    request_parameter: Optional[str] = None


@dataclass
class University:
    id: str
    city_id: str
    name: str
    request_parameter: Optional[str] = None


@dataclass
class Offer:
    """A Master's-level degree offer of a university.

    ``request_parameter`` looks like ``/y24/x/UNI1/SPEC7/`` and carries the
    year, university and speciality tokens needed by the admissions API.
    """

    id: str
    university_id: str
    speciality: str
    request_parameter: Optional[str] = None
    program: Optional[str] = None
    budget_count: int = 0


@dataclass
class Person:
    id: str
    full_name: str


@dataclass
class Application:
    """One ranked applicant entry of an offer."""

    id: str
    offer_id: str
    person_id: str
    grade: float = 0.0
    state: Optional[str] = None
    priority: Optional[int] = None
    request_parameter: Optional[str] = None
