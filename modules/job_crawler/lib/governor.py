# job_crawler/governor.py
"""
Failure governor for one scan.

The empty-page counter lives on the ScanCursor and is never decremented:
the scan stops after N empty listing pages in total, not N in a row.
Listing fetch failures and delivery exceptions stop the scan at once.
"""

from __future__ import annotations

import logging

from .models import (
    HALT_DELIVERY_FAILED,
    HALT_FAILURE_THRESHOLD,
    HALT_LISTING_FETCH_FAILED,
    ScanCursor,
)

log = logging.getLogger(__name__)

FAILURE_THRESHOLD = 5


class FailureGovernor:
    def __init__(self, threshold: int = FAILURE_THRESHOLD) -> None:
        if threshold < 1:
            raise ValueError("failure threshold must be >= 1")
        self.threshold = threshold

    def record_empty_page(self, cursor: ScanCursor, url: str = "") -> bool:
        """Count one empty listing page. Returns True if the scan was halted."""
        cursor.failures += 1
        log.warning("Empty listing page %s (%d/%d)", url, cursor.failures, self.threshold)
        if cursor.failures >= self.threshold:
            log.warning("Too many empty listing pages; stopping scan")
            cursor.halt(HALT_FAILURE_THRESHOLD)
            return True
        return False

    def listing_fetch_failed(self, cursor: ScanCursor, error: BaseException) -> None:
        log.error("Listing page could not be fetched, stopping scan: %s", error)
        cursor.halt(HALT_LISTING_FETCH_FAILED)

    def delivery_failed(self, cursor: ScanCursor, error: BaseException) -> None:
        log.error("Delivery raised, stopping scan: %r", error)
        cursor.halt(HALT_DELIVERY_FAILED)
