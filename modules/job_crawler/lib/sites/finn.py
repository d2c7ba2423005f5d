# job_crawler/sites/finn.py
"""
finn.no full-time job search.

Listing cards are <article> elements; the detail page keeps its facts in
`ul.space-y-10 > li` rows of <span>label</span> + value siblings.
"""

from __future__ import annotations

from bs4 import Tag

from ..http_client import Document
from ..normalize import split_tags
from ..utils import remove_whitespace
from .base import SiteDescriptor, SiteExtractor, own_text, select_abs_attr, select_text
from .registry import register

BASE_URL = "https://www.finn.no/job/fulltime/search.html"
PAGE_URL = "https://www.finn.no/job/fulltime/search.html?page={page}"

_COMPANY_CSS = (
    "body > main > div:nth-of-type(2) > article > section:nth-of-type(1) > section:nth-of-type(2) > div > p"
)


class FinnExtractor(SiteExtractor):
    def extract_url(self, doc: Document, card: Tag) -> str | None:
        return select_abs_attr(doc, card, "h2 > a[href]", "href", required_attrs=("id",))

    def extract_image_url(self, doc: Document, card: Tag) -> str | None:
        return select_abs_attr(doc, card, "img[src]", "src")

    def extract_title(self, doc: Document, card: Tag) -> str | None:
        return select_text(card, "h2")

    def extract_company_name(self, doc: Document) -> str | None:
        return select_text(doc, _COMPANY_CSS, own=True)

    def extract_company_image_url(self, doc: Document) -> str | None:
        return select_abs_attr(doc, doc, "img.img-format__img", "src")

    def extract_description(self, doc: Document) -> str | None:
        parts = [el.decode_contents() for el in doc.select("div.import-decoration")]
        return "".join(parts) or None

    def extract_deadline_text(self, doc: Document) -> str | None:
        for li in doc.select("ul > li"):
            child = li.find(True)
            if child is not None and own_text(li).lower() == "frist" and child.get_text(strip=True):
                return own_text(child)
        return None

    def extract_tags(self, doc: Document) -> set[str]:
        keywords = doc.select_one("section > h2.t3 + p")
        if keywords is None or not keywords.get_text(strip=True):
            return set()
        return split_tags(remove_whitespace(own_text(keywords)))

    def extract_raw_attributes(self, doc: Document) -> list[tuple[str, str]]:
        pairs: list[tuple[str, str]] = []
        for li in doc.select("ul.space-y-10 > li"):
            for header in li.find_all("span", recursive=False):
                siblings = [s for s in li.find_all(True, recursive=False) if s is not header]
                value = ", ".join(own_text(s) for s in siblings)
                # label + bare text value: the value is the <li>'s own text
                if len(siblings) <= 1:
                    value = value + own_text(li)
                label = own_text(header)
                if label and value:
                    pairs.append((label, value))
        return pairs


DESCRIPTOR = register(
    SiteDescriptor(
        name="finn",
        base_url=BASE_URL,
        page_url=PAGE_URL,
        card_selector="article",
        extractor=FinnExtractor(),
    )
)

__all__ = ["DESCRIPTOR", "FinnExtractor"]
