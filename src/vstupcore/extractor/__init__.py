"""HTML and JSON extraction for the crawl stages."""

from .pages import PageLink, extract_cities, extract_offers, extract_universities
from .payloads import (
    ApiRedirect,
    ApplicantRow,
    ApplicationsPayload,
    ApplicationsRequest,
    decode_application_rows,
)

__all__ = [
    "ApiRedirect",
    "ApplicantRow",
    "ApplicationsPayload",
    "ApplicationsRequest",
    "PageLink",
    "decode_application_rows",
    "extract_cities",
    "extract_offers",
    "extract_universities",
]
