# job_crawler/sites/arbeidsplassen.py
"""
arbeidsplassen.nav.no job listings.

Pagination is by result offset: `?from=` advances 25 results per logical page.
The site shows no logos and no keyword tags.
"""

from __future__ import annotations

from bs4 import Tag

from ..http_client import Document
from .base import SiteDescriptor, SiteExtractor, has_class, own_text, select_abs_attr, select_html, select_text
from .registry import register

BASE_URL = "https://arbeidsplassen.nav.no/stillinger"
PAGE_URL = "https://arbeidsplassen.nav.no/stillinger?from={page}"
ELEMENTS_PER_PAGE = 25


def page_offset(page: int) -> int:
    return page * ELEMENTS_PER_PAGE


class ArbeidsplassenExtractor(SiteExtractor):
    def extract_url(self, doc: Document, card: Tag) -> str | None:
        return select_abs_attr(doc, card, "h3 a[href]", "href")

    def extract_title(self, doc: Document, card: Tag) -> str | None:
        return select_text(card, "h3 a", required_attrs=("href",))

    def extract_company_name(self, doc: Document) -> str | None:
        return select_text(doc, "p.navds-body-long.navds-body-long--medium.navds-typo--semibold", own=True)

    def extract_description(self, doc: Document) -> str | None:
        return select_html(doc, "div.arb-rich-text.job-posting-text")

    def extract_deadline_text(self, doc: Document) -> str | None:
        return select_text(doc, "main article dl dd p", own=True)

    def extract_raw_attributes(self, doc: Document) -> list[tuple[str, str]]:
        pairs: list[tuple[str, str]] = []
        for dl in doc.select("main article section dl"):
            header: Tag | None = None
            for el in dl.find_all(True, recursive=False):
                if has_class(el, "navds-label"):
                    header = el
                    continue
                value = own_text(el) or el.get_text(" ", strip=True)
                if header is None or not value:
                    continue
                pairs.append((own_text(header) or header.get_text(" ", strip=True), value))
        return pairs


DESCRIPTOR = register(
    SiteDescriptor(
        name="arbeidsplassennav",
        base_url=BASE_URL,
        page_url=PAGE_URL,
        card_selector="article",
        extractor=ArbeidsplassenExtractor(),
        page_param=page_offset,
    )
)
