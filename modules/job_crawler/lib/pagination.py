# job_crawler/pagination.py
"""
Pagination controller: which listing URL to fetch next, and when to stop.

All functions are pure over (SiteDescriptor, ScanCursor) except
`discover_max_page`, which performs one fetch of the first listing page.
"""

from __future__ import annotations

import logging

from .http_client import Fetcher, FetchError
from .models import ScanCursor
from .sites.base import SiteDescriptor

log = logging.getLogger(__name__)


def current_url(descriptor: SiteDescriptor, cursor: ScanCursor) -> str:
    """Page 1 is the base listing URL; later pages use the paginated template."""
    if cursor.page <= 1:
        return descriptor.base_url
    return descriptor.page_url.format(page=descriptor.page_param(cursor.page))


def advance(cursor: ScanCursor) -> ScanCursor:
    # logical pages, never raw offsets
    cursor.page += 1
    return cursor


def discover_max_page(descriptor: SiteDescriptor, fetcher: Fetcher) -> int | None:
    """
    Fetch the first listing page of a bounded site and read its last page number.

    Returns None when the page cannot be fetched or the paginator cannot be
    parsed; the caller must then not start the scan.
    """
    try:
        doc = fetcher.fetch(descriptor.base_url)
    except FetchError as e:
        log.error("Max page discovery for %s failed: %s", descriptor.name, e)
        return None

    max_page = descriptor.extractor.extract_max_page(doc)
    if max_page is None or max_page < 1:
        log.error("Could not set up max page for %s", descriptor.name)
        return None
    log.info("Max page set to %d for %s", max_page, descriptor.name)
    return max_page


def should_continue(cursor: ScanCursor) -> bool:
    return cursor.continue_scan and (cursor.max_page == 0 or cursor.page <= cursor.max_page)
