"""
selectolax-based extraction of links from the site's HTML pages.

Selectors are kept as module constants so that a layout change on the site is
a one-line edit.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from selectolax.lexbor import LexborHTMLParser, LexborNode

CITY_ROWS_SELECTOR = "body > div:nth-child(10) > div > div:nth-child(2) > div > div > table > tbody > tr"
CITY_LINK_SELECTOR = "td:nth-child(1) > a"

UNIVERSITY_LINKS_SELECTOR = "ul.section-search-result-list > li > a"

OFFER_ROWS_SELECTOR = "div.row.no-gutters.table-of-specs-item-row.qual2.base620.hidden"
OFFER_LABEL_SELECTOR = "div:nth-child(1) > div.table-of-specs-item > b:nth-child(1)"
OFFER_SPECIALITY_SELECTOR = "div:nth-child(1) > div.table-of-specs-item > span > a"
OFFER_LINK_SELECTOR = "div.col-xl-2.col-lg-2.col-md-12 > div > a"


@dataclass(frozen=True)
class PageLink:
    """Text and href of an extracted link."""

    text: str
    href: str


def _text(node: Optional[LexborNode]) -> str:
    if node is None:
        return ""
    return (node.text(deep=True) or "").strip()


def _href(node: Optional[LexborNode]) -> Optional[str]:
    if node is None:
        return None
    href = node.attributes.get("href")
    return href.strip() if href else None


def extract_cities(html: str, *, rows_selector: str = CITY_ROWS_SELECTOR) -> List[PageLink]:
    """One link per region row, in document order; rows without a link are skipped."""
    tree = LexborHTMLParser(html)
    cities: List[PageLink] = []
    for row in tree.css(rows_selector):
        anchor = row.css_first(CITY_LINK_SELECTOR)
        href = _href(anchor)
        if anchor is None or href is None:
            continue
        cities.append(PageLink(text=_text(anchor), href=href))
    return cities


def extract_universities(html: str) -> List[PageLink]:
    """University links of a region page; the name is the title attribute, falling back to the link text."""
    tree = LexborHTMLParser(html)
    universities: List[PageLink] = []
    for anchor in tree.css(UNIVERSITY_LINKS_SELECTOR):
        href = _href(anchor)
        if href is None:
            continue
        title = (anchor.attributes.get("title") or "").strip()
        universities.append(PageLink(text=title or _text(anchor), href=href))
    return universities


def extract_offers(html: str, marker: str) -> List[PageLink]:
    """Speciality name and offer href for every offer row labelled ``marker``."""
    tree = LexborHTMLParser(html)
    offers: List[PageLink] = []
    for row in tree.css(OFFER_ROWS_SELECTOR):
        if _text(row.css_first(OFFER_LABEL_SELECTOR)) != marker:
            continue
        speciality = row.css_first(OFFER_SPECIALITY_SELECTOR)
        href = _href(row.css_first(OFFER_LINK_SELECTOR))
        if speciality is None or href is None:
            continue
        offers.append(PageLink(text=_text(speciality), href=href))
    return offers
