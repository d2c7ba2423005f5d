from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any

from .utils import is_blank


@dataclass
class CandidateRecord:
    """
    One job posting under construction (pre-validity, pre-dedupe).

    The listing card supplies url/title/image_url; everything else comes from
    the detail page. Once handed to the delivery sink it is never mutated.
    """

    url: str
    title: str
    image_url: str | None = None
    company_name: str | None = None
    company_image_url: str | None = None
    description: str | None = None
    deadline: date | None = None
    tags: set[str] = field(default_factory=set)
    attributes: dict[str, set[str]] = field(default_factory=dict)

    def is_valid(self) -> bool:
        """Deliverable only if url, company name, title and description are non-blank."""
        return not (
            is_blank(self.url) or is_blank(self.company_name) or is_blank(self.title) or is_blank(self.description)
        )

    def to_payload(self) -> dict[str, Any]:
        """JSON-safe shape expected by the downstream API."""
        return {
            "url": self.url,
            "company_name": self.company_name,
            "company_image_url": self.company_image_url,
            "image_url": self.image_url,
            "title": self.title,
            "description": self.description,
            "deadline_valid": self.deadline is not None,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "job_tags": sorted(self.tags),
            "job_definitions": {k: sorted(v) for k, v in sorted(self.attributes.items())},
        }

    def summary(self) -> str:
        desc = (self.description or "")[:20]
        attrs = {k: sorted(v) for k, v in self.attributes.items()}
        return (
            f"CandidateRecord(url={self.url!r}, company={self.company_name!r}, title={self.title!r}, "
            f"description={desc!r}..., deadline={self.deadline}, tags={sorted(self.tags)}, attributes={attrs})"
        )


@dataclass
class DeliveryBatch:
    """Valid, non-duplicate records gathered from ONE listing page."""

    site: str
    page_url: str
    records: list[CandidateRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)

    def urls(self) -> list[str]:
        return [r.url for r in self.records]


# Halt reasons (ScanCursor.halt_reason / ScanReport.halt_reason)
HALT_MAX_PAGE = "max_page"
HALT_FAILURE_THRESHOLD = "failure_threshold"
HALT_LISTING_FETCH_FAILED = "listing_fetch_failed"
HALT_DELIVERY_FAILED = "delivery_failed"
HALT_DISCOVERY_FAILED = "discovery_failed"
HALT_DISABLED = "disabled"
HALT_CRASHED = "crashed"


@dataclass
class ScanCursor:
    """
    Mutable per-run state owned by exactly one scan loop.

    `continue_scan` starts True and only ever goes to False (see `halt`).
    `failures` counts empty listing pages and is never decremented.
    """

    page: int = 1
    max_page: int = 0  # 0 = unknown/unbounded
    failures: int = 0
    continue_scan: bool = True
    halt_reason: str | None = None

    def halt(self, reason: str) -> None:
        # first reason wins; the flag never flips back
        if self.continue_scan:
            self.halt_reason = reason
        self.continue_scan = False


@dataclass
class ScanReport:
    """Outcome of one site's scan pass."""

    site: str
    pages_fetched: int = 0
    empty_pages: int = 0
    records_built: int = 0
    records_delivered: int = 0
    batches_delivered: list[int] = field(default_factory=list)
    halt_reason: str | None = None
    duration_us: int = 0

    def as_dict(self) -> dict[str, Any]:
        return {
            "pages_fetched": self.pages_fetched,
            "empty_pages": self.empty_pages,
            "records_built": self.records_built,
            "records_delivered": self.records_delivered,
            "batches_delivered": list(self.batches_delivered),
            "halt_reason": self.halt_reason,
            "duration_us": self.duration_us,
        }
