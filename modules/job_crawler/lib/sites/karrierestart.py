# job_crawler/sites/karrierestart.py
"""
karrierestart.no job listings.

The only bounded site: the last entry of the mobile paginator links to
`...&page=N`, and the scan stops after page N.
"""

from __future__ import annotations

import logging

from bs4 import Tag

from ..http_client import Document
from ..utils import remove_trailing_comma
from .base import (
    SiteDescriptor,
    SiteExtractor,
    full_text,
    has_class,
    own_text,
    select_abs_attr,
    select_html,
    select_text,
)
from .registry import register

log = logging.getLogger(__name__)

BASE_URL = "https://karrierestart.no/jobb"
PAGE_URL = "https://karrierestart.no/jobb?ff=&page={page}"


class KarriereStartExtractor(SiteExtractor):
    def extract_url(self, doc: Document, card: Tag) -> str | None:
        return select_abs_attr(doc, card, "a.j-title", "href")

    def extract_image_url(self, doc: Document, card: Tag) -> str | None:
        return select_abs_attr(doc, card, "div.j-presentation.j-presentation-overflowed > a > img[src]", "src")

    def extract_title(self, doc: Document, card: Tag) -> str | None:
        return select_text(card, "a.j-title > span")

    def extract_company_name(self, doc: Document) -> str | None:
        return select_text(doc, "div.menu-item.topic-header-text", own=True)

    def extract_company_image_url(self, doc: Document) -> str | None:
        return select_abs_attr(doc, doc, "div.cp_header_logo > a > img", "src")

    def extract_description(self, doc: Document) -> str | None:
        return select_html(doc, "div.description_cnt--pb20.dual-bullet-list.p_fix")

    def extract_deadline_text(self, doc: Document) -> str | None:
        return select_text(doc, "span.jobad-deadline-date", own=True)

    def extract_tags(self, doc: Document) -> set[str]:
        tags = set()
        for a in doc.select("p.txt.job-tags > a"):
            tag = remove_trailing_comma(own_text(a))
            if tag:
                tags.add(tag)
        return tags

    def extract_raw_attributes(self, doc: Document) -> list[tuple[str, str]]:
        pairs: list[tuple[str, str]] = []
        header: Tag | None = None
        for el in doc.select("div.concrete_facta_item > div"):
            if has_class(el, "item_header"):
                header = el
            if header is None or not has_class(el, "item_cnt"):
                continue
            pairs.append((full_text(header), full_text(el)))
        return pairs

    def extract_max_page(self, doc: Document) -> int | None:
        items = doc.select("ul.paginate.paginate-mobile > li")
        last_link = items[-1].select_one("a[href]") if items else None
        if last_link is None:
            log.error("Could not set up max page from %s", doc.url)
            return None
        href = doc.absolute(last_link.get("href")) or ""
        _, sep, tail = href.partition("page=")
        try:
            return int(tail.split("&", 1)[0].replace(" ", "")) if sep else None
        except ValueError:
            log.error("Could not parse a page number from %r", href)
            return None


DESCRIPTOR = register(
    SiteDescriptor(
        name="karrierestart",
        base_url=BASE_URL,
        page_url=PAGE_URL,
        card_selector="div.featured-wrap",
        extractor=KarriereStartExtractor(),
        bounded=True,
    )
)
