import pytest

from modules.job_crawler.lib import pagination
from modules.job_crawler.lib.governor import FailureGovernor
from modules.job_crawler.lib.http_client import FetchError
from modules.job_crawler.lib.models import (
    HALT_DELIVERY_FAILED,
    HALT_FAILURE_THRESHOLD,
    HALT_LISTING_FETCH_FAILED,
    ScanCursor,
)
from modules.job_crawler.lib.sites.arbeidsplassen import page_offset


def test_first_page_uses_base_url_then_template(fakes):
    site = fakes.make_board("nav", page_param=page_offset)
    cursor = ScanCursor()
    assert pagination.current_url(site, cursor) == f"{fakes.BOARD}/nav"
    pagination.advance(cursor)
    assert cursor.page == 2
    # the template sees the offset, the cursor keeps the logical page
    assert pagination.current_url(site, cursor) == f"{fakes.BOARD}/nav?page=50"


def test_should_continue_respects_max_page_and_halt():
    cursor = ScanCursor(page=3, max_page=3)
    assert pagination.should_continue(cursor)
    pagination.advance(cursor)
    assert not pagination.should_continue(cursor)

    unbounded = ScanCursor(page=999)
    assert pagination.should_continue(unbounded)
    unbounded.halt("whatever")
    assert not pagination.should_continue(unbounded)


def test_discover_max_page_reads_paginator(fakes):
    site = fakes.make_board(bounded=True)
    fetcher = fakes.FakeFetcher({site.base_url: fakes.listing_html("a", max_page=4)})
    assert pagination.discover_max_page(site, fetcher) == 4
    assert fetcher.calls == [site.base_url]


@pytest.mark.parametrize("pages", [{}, {"https://jobs.example.test/board": "<html><body></body></html>"}])
def test_discover_max_page_failure_returns_none(fakes, pages):
    site = fakes.make_board(bounded=True)
    assert pagination.discover_max_page(site, fakes.FakeFetcher(pages)) is None


def test_empty_pages_accumulate_and_halt_at_threshold():
    gov = FailureGovernor(threshold=3)
    cursor = ScanCursor()
    assert gov.record_empty_page(cursor) is False
    assert gov.record_empty_page(cursor) is False
    assert cursor.continue_scan
    assert gov.record_empty_page(cursor) is True
    assert cursor.failures == 3
    assert cursor.halt_reason == HALT_FAILURE_THRESHOLD


def test_first_halt_reason_wins():
    gov = FailureGovernor()
    cursor = ScanCursor()
    gov.listing_fetch_failed(cursor, FetchError("https://x", 3))
    gov.delivery_failed(cursor, RuntimeError("later"))
    assert cursor.halt_reason == HALT_LISTING_FETCH_FAILED
    assert cursor.continue_scan is False

    other = ScanCursor()
    gov.delivery_failed(other, RuntimeError("down"))
    assert other.halt_reason == HALT_DELIVERY_FAILED


def test_threshold_must_be_positive():
    with pytest.raises(ValueError):
        FailureGovernor(threshold=0)
