from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from bs4 import NavigableString, Tag

from ..http_client import Document
from ..models import CandidateRecord
from ..normalize import normalize_attributes, parse_deadline

log = logging.getLogger(__name__)


class ExtractionError(Exception):
    """A required field (listing URL or title) could not be extracted."""


def identity_page(page: int) -> int:
    return page


@dataclass(frozen=True)
class SiteDescriptor:
    """
    Immutable per-site configuration.

    - base_url: first listing page
    - page_url: paginated listing template; "{page}" receives page_param(page)
    - card_selector: CSS selector for the job "cards" on a listing page
    - bounded: if True, the max page is discovered before the scan starts
    - page_param: logical page number -> value placed in the URL (e.g. an offset)
    """

    name: str
    base_url: str
    page_url: str
    card_selector: str
    extractor: SiteExtractor
    initial_page: int = 1
    bounded: bool = False
    page_param: Callable[[int], int] = field(default=identity_page)


class SiteExtractor(ABC):
    """
    Per-site extraction rules.

    Listing phase (one card): url, image url, title. A missing url or title
    raises ExtractionError and only that card is skipped.

    Detail phase (one detail page): company, company image, description,
    deadline text, tags and raw (label, value) attribute pairs. Each may be
    empty; validity is decided by CandidateRecord.is_valid().
    """

    # ---- listing card ----
    @abstractmethod
    def extract_url(self, doc: Document, card: Tag) -> str | None: ...

    @abstractmethod
    def extract_title(self, doc: Document, card: Tag) -> str | None: ...

    def extract_image_url(self, doc: Document, card: Tag) -> str | None:
        return None

    # ---- detail page ----
    @abstractmethod
    def extract_company_name(self, doc: Document) -> str | None: ...

    def extract_company_image_url(self, doc: Document) -> str | None:
        return None

    @abstractmethod
    def extract_description(self, doc: Document) -> str | None: ...

    def extract_deadline_text(self, doc: Document) -> str | None:
        return None

    def extract_tags(self, doc: Document) -> set[str]:
        return set()

    def extract_raw_attributes(self, doc: Document) -> list[tuple[str, str]]:
        return []

    # ---- bounded pagination ----
    def extract_max_page(self, doc: Document) -> int | None:
        """Only bounded sites override this."""
        return None

    # ---- template methods used by the scan loop ----
    def start_record(self, doc: Document, card: Tag) -> CandidateRecord:
        """Build the listing-phase part of a record or raise ExtractionError."""
        url = self.extract_url(doc, card)
        if not url:
            raise ExtractionError(f"Job post url was null from {doc.url}")
        title = self.extract_title(doc, card)
        if not title:
            raise ExtractionError(f"Title was null from {doc.url}")
        return CandidateRecord(url=url, title=title, image_url=self.extract_image_url(doc, card))

    def complete_record(self, record: CandidateRecord, detail: Document) -> CandidateRecord:
        """Fill the detail-phase fields of `record` from its detail page."""
        record.company_name = self.extract_company_name(detail)
        record.company_image_url = self.extract_company_image_url(detail)
        record.description = self.extract_description(detail)
        record.deadline = parse_deadline(self.extract_deadline_text(detail))
        record.tags = set(self.extract_tags(detail))
        record.attributes = normalize_attributes(self.extract_raw_attributes(detail), source_url=detail.url)
        return record


# -----------------------------------------------------------------------------
# Selector helpers
# -----------------------------------------------------------------------------
def own_text(tag: Tag) -> str:
    """Text of the tag's direct string children only (no descendants)."""
    parts = [str(c) for c in tag.children if isinstance(c, NavigableString)]
    return " ".join(" ".join(parts).split())


def full_text(tag: Tag) -> str:
    return tag.get_text(" ", strip=True)


def first(node: Tag | Document, css: str, *, required_attrs: Sequence[str] = ()) -> Tag | None:
    """First match of `css` under node, or None (also None if it lacks a required attribute)."""
    found = node.select_one(css)
    if found is None:
        return None
    if any(not found.has_attr(a) for a in required_attrs):
        return None
    return found


def select_text(
    node: Tag | Document,
    css: str,
    *,
    own: bool = False,
    required_attrs: Sequence[str] = (),
) -> str | None:
    found = first(node, css, required_attrs=required_attrs)
    if found is None:
        return None
    return own_text(found) if own else full_text(found)


def select_abs_attr(
    doc: Document,
    node: Tag | Document,
    css: str,
    attr: str,
    *,
    required_attrs: Sequence[str] = (),
) -> str | None:
    found = first(node, css, required_attrs=required_attrs)
    if found is None:
        return None
    value = found.get(attr)
    if isinstance(value, list):
        value = " ".join(value)
    return doc.absolute(value)


def select_html(node: Tag | Document, css: str) -> str | None:
    found = first(node, css)
    if found is None:
        return None
    return found.decode_contents().strip()


def has_class(tag: Tag, name: str) -> bool:
    return name in (tag.get("class") or [])
