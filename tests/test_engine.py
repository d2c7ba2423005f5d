# tests/test_engine.py
import dataclasses

import pytest

from modules.job_crawler.lib import engine
from modules.job_crawler.lib.config import ConfigError, Settings
from modules.job_crawler.lib.db import DedupGate
from modules.job_crawler.lib.delivery import DeliveryError
from modules.job_crawler.lib.engine import CrawlScheduler, ScanLoop, run_once
from modules.job_crawler.lib.models import (
    HALT_CRASHED,
    HALT_DELIVERY_FAILED,
    HALT_DISABLED,
    HALT_DISCOVERY_FAILED,
    HALT_FAILURE_THRESHOLD,
    HALT_LISTING_FETCH_FAILED,
    HALT_MAX_PAGE,
)


def _page(board, n):
    return board.base_url if n == 1 else board.page_url.format(page=n)


def _listing_calls(fetcher, board):
    return [u for u in fetcher.calls if u.startswith(board.base_url)]


def _loop(board, settings, fetcher, store, sink):
    return ScanLoop(board, settings, fetcher, DedupGate(store, settings.identity), sink)


# ---------------------------------------------------------------------
# Scan loop scenarios
# ---------------------------------------------------------------------
def test_scan_halts_after_five_empty_pages_with_two_batches(fakes, board, settings, store, sink):
    pages = {
        _page(board, 1): fakes.listing_html(1, 2),
        _page(board, 2): fakes.listing_html(),
        _page(board, 3): fakes.listing_html(3, 4, 5),
    }
    for n in range(4, 10):
        pages[_page(board, n)] = fakes.listing_html()
    fakes.with_details(pages, 1, 2, 3, 4, 5)
    fetcher = fakes.FakeFetcher(pages)

    report = _loop(board, settings, fetcher, store, sink).run()

    assert _listing_calls(fetcher, board) == [_page(board, n) for n in range(1, 8)]
    assert sink.sizes == [2, 3]
    assert report.pages_fetched == 7
    assert report.empty_pages == 5
    assert report.batches_delivered == [2, 3]
    assert report.records_delivered == 5
    assert report.halt_reason == HALT_FAILURE_THRESHOLD


def test_empty_page_counter_is_never_reset_by_later_successes(fakes, board, settings, store, sink):
    # empty, full, empty, full, empty, full, empty, full, empty -> halt on the 9th page
    pages = {}
    for n in range(1, 12):
        pages[_page(board, n)] = fakes.listing_html(n) if n % 2 == 0 else fakes.listing_html()
    fakes.with_details(pages, *range(1, 12))
    fetcher = fakes.FakeFetcher(pages)

    report = _loop(board, settings, fetcher, store, sink).run()

    assert report.pages_fetched == 9
    assert report.empty_pages == 5
    assert sink.sizes == [1, 1, 1, 1]
    assert report.halt_reason == HALT_FAILURE_THRESHOLD


def test_records_are_marked_seen_only_after_successful_delivery(fakes, board, settings, store):
    pages = fakes.with_details({_page(board, 1): fakes.listing_html(1, 2)}, 1, 2)
    sink = fakes.FakeSink(result=False)

    report = _loop(board, settings, fakes.FakeFetcher(pages), store, sink).run()

    assert sink.sizes == [2]
    assert store.rows == set()
    assert report.records_delivered == 0
    assert report.batches_delivered == []
    # page 2 is missing -> listing fetch failure
    assert report.halt_reason == HALT_LISTING_FETCH_FAILED


def test_second_pass_with_same_identity_never_redelivers(fakes, board, settings, store):
    pages = fakes.with_details({_page(board, 1): fakes.listing_html(1, 2)}, 1, 2)

    first = fakes.FakeSink()
    _loop(board, settings, fakes.FakeFetcher(pages), store, first).run()
    assert first.sizes == [2]
    assert store.rows == {(fakes.job_url(1), "10.0.0.5:8080"), (fakes.job_url(2), "10.0.0.5:8080")}

    second = fakes.FakeSink()
    fetcher = fakes.FakeFetcher(pages)
    _loop(board, settings, fetcher, store, second).run()
    assert second.batches == []
    # dedup happens before the detail page is requested
    assert fakes.job_url(1) not in fetcher.calls


def test_other_identity_is_tracked_independently(fakes, board, settings, store):
    pages = fakes.with_details({_page(board, 1): fakes.listing_html(1)}, 1)
    _loop(board, settings, fakes.FakeFetcher(pages), store, fakes.FakeSink()).run()

    other = Settings.from_kwargs({"api_ip": "10.0.0.6", "api_port": 9090, "api_request_param": "jobPosts"})
    sink = fakes.FakeSink()
    _loop(board, other, fakes.FakeFetcher(pages), store, sink).run()
    assert sink.sizes == [1]


def test_delivery_exception_halts_scan_and_marks_nothing(fakes, board, settings, store):
    pages = fakes.with_details(
        {_page(board, 1): fakes.listing_html(1), _page(board, 2): fakes.listing_html(2)},
        1,
        2,
    )
    sink = fakes.FakeSink(result=DeliveryError("connection refused"))
    fetcher = fakes.FakeFetcher(pages)

    report = _loop(board, settings, fetcher, store, sink).run()

    assert report.halt_reason == HALT_DELIVERY_FAILED
    assert len(sink.batches) == 1
    assert _page(board, 2) not in fetcher.calls
    assert store.rows == set()


def test_listing_fetch_failure_halts_immediately(fakes, board, settings, store, sink):
    fetcher = fakes.FakeFetcher({_page(board, 1): OSError("boom")})

    report = _loop(board, settings, fetcher, store, sink).run()

    assert fetcher.calls == [_page(board, 1)]
    assert report.pages_fetched == 0
    assert report.halt_reason == HALT_LISTING_FETCH_FAILED


def test_detail_fetch_failure_drops_only_that_candidate(fakes, board, settings, store, sink):
    pages = fakes.with_details({_page(board, 1): fakes.listing_html(1, 2, 3)}, 1, 3)

    _loop(board, settings, fakes.FakeFetcher(pages), store, sink).run()

    assert [r.url for r in sink.batches[0]] == [fakes.job_url(1), fakes.job_url(3)]


def test_invalid_records_are_dropped_without_counting_as_empty_page(fakes, board, settings, store, sink):
    pages = {_page(board, 1): fakes.listing_html(1, 2)}
    pages[fakes.job_url(1)] = fakes.detail_html(1, company="")
    pages[fakes.job_url(2)] = fakes.detail_html(2, description="   ")

    report = _loop(board, settings, fakes.FakeFetcher(pages), store, sink).run()

    assert sink.batches == []
    assert report.empty_pages == 0
    assert report.records_built == 0


def test_listing_element_without_url_is_skipped(fakes, board, settings, store, sink):
    html = (
        '<div class="job"><a class="title">No link</a></div>'
        '<div class="job"><a class="title" href="/jobs/7">Job 7</a></div>'
    )
    pages = fakes.with_details({_page(board, 1): html}, 7)

    _loop(board, settings, fakes.FakeFetcher(pages), store, sink).run()

    assert [r.url for r in sink.batches[0]] == [fakes.job_url(7)]


def test_delivered_records_carry_normalized_detail_fields(fakes, board, settings, store, sink):
    pages = fakes.with_details({_page(board, 1): fakes.listing_html(1)}, 1, sector="Kommunal")

    _loop(board, settings, fakes.FakeFetcher(pages), store, sink).run()

    (record,) = sink.batches[0]
    assert record.title == "Job 1"
    assert record.company_name == "Acme AS"
    assert record.deadline.isoformat() == "2025-12-24"
    assert record.tags == {"python", "sql"}
    assert record.attributes == {"Location": {"Oslo"}, "Sector": {"Not specified"}}


def test_start_page_override_skips_earlier_pages(fakes, board, store, sink, tmp_path):
    settings = Settings.from_kwargs({"disable_delivery": True, "start_page": 3, "sqlite_path": str(tmp_path / "x.db")})
    pages = fakes.with_details({_page(board, 3): fakes.listing_html(9)}, 9)
    fetcher = fakes.FakeFetcher(pages)

    _loop(board, settings, fetcher, store, sink).run()

    assert fetcher.calls[0] == _page(board, 3)
    assert _page(board, 1) not in fetcher.calls
    assert sink.sizes == [1]


def test_disabled_site_does_no_network_io(fakes, board, store, sink):
    settings = Settings.from_kwargs({"disable_delivery": True, "disabled_sites": "Board, finn"})
    fetcher = fakes.FakeFetcher({})

    report = _loop(board, settings, fetcher, store, sink).run()

    assert fetcher.calls == []
    assert report.halt_reason == HALT_DISABLED


def test_halted_loop_does_not_resume(fakes, board, settings, store, sink):
    fetcher = fakes.FakeFetcher({})
    loop = _loop(board, settings, fetcher, store, sink)
    first = loop.run()
    calls = list(fetcher.calls)

    assert loop.run() is first
    assert fetcher.calls == calls
    assert loop.state == engine.HALTED


# ---------------------------------------------------------------------
# Bounded pagination
# ---------------------------------------------------------------------
def test_bounded_site_stops_after_max_page(fakes, settings, store, sink):
    board = fakes.make_board("bounded", bounded=True)
    pages = {
        _page(board, 1): fakes.listing_html(1, max_page=2),
        _page(board, 2): fakes.listing_html(2, max_page=2),
        _page(board, 3): fakes.listing_html(3, max_page=2),
    }
    fakes.with_details(pages, 1, 2, 3)
    fetcher = fakes.FakeFetcher(pages)

    report = _loop(board, settings, fetcher, store, sink).run()

    assert _page(board, 3) not in fetcher.calls
    assert sink.sizes == [1, 1]
    assert report.halt_reason == HALT_MAX_PAGE


def test_bounded_site_without_paginator_never_scans(fakes, settings, store, sink):
    board = fakes.make_board("bounded", bounded=True)
    fetcher = fakes.FakeFetcher({_page(board, 1): fakes.listing_html(1)})

    loop = _loop(board, settings, fetcher, store, sink)
    report = loop.run()

    # only the discovery request; no listing page was scraped
    assert fetcher.calls == [board.base_url]
    assert report.pages_fetched == 0
    assert report.halt_reason == HALT_DISCOVERY_FAILED
    assert loop.state == engine.HALTED


# ---------------------------------------------------------------------
# Crawl scheduler
# ---------------------------------------------------------------------
def test_scheduler_runs_each_site_and_isolates_crashes(fakes, settings, store):
    good = fakes.make_board("good")
    bad = fakes.make_board("bad")
    pages = fakes.with_details({good.base_url: fakes.listing_html(1)}, 1)
    fetchers = []

    def fetcher_factory(_settings):
        f = fakes.FakeFetcher(pages)
        fetchers.append(f)
        return f

    class ExplodingExtractor(type(bad.extractor)):
        def extract_url(self, doc, card):
            raise RuntimeError("selector bug")

    bad = dataclasses.replace(bad, extractor=ExplodingExtractor())
    pages[bad.base_url] = fakes.listing_html(5)

    sink = fakes.FakeSink()
    reports = CrawlScheduler(
        settings, [good, bad], fetcher_factory=fetcher_factory, sink_factory=lambda s: sink, store=store
    ).run()

    assert reports["good"].records_delivered == 1
    assert reports["bad"].halt_reason == HALT_CRASHED
    assert all(f.closed for f in fetchers)


def test_run_once_summarizes_all_sites(fakes, settings, store):
    a = fakes.make_board("a")
    b = fakes.make_board("b")
    pages = fakes.with_details({a.base_url: fakes.listing_html(1, 2), b.base_url: fakes.listing_html(3)}, 1, 2, 3)

    summary = run_once(
        settings,
        sites=[a, b],
        fetcher_factory=lambda s: fakes.FakeFetcher(pages),
        sink_factory=lambda s: fakes.FakeSink(),
        store=store,
    )

    assert summary["delivered_total"] == 3
    assert set(summary["by_site"]) == {"a", "b"}
    assert summary["by_site"]["a"]["batches_delivered"] == [2]
    assert summary["message"] == "3 job posts delivered across 2 sites"


def test_select_sites_rejects_unknown_names():
    settings = Settings.from_kwargs({"disable_delivery": True, "sites": "finn, nosuchsite"})
    with pytest.raises(ConfigError):
        engine.select_sites(settings)


def test_select_sites_defaults_to_every_registered_site():
    settings = Settings.from_kwargs({"disable_delivery": True})
    names = {d.name for d in engine.select_sites(settings)}
    assert names == {"finn", "karrierestart", "arbeidsplassennav"}


# ---------------------------------------------------------------------
# Contained failures
# ---------------------------------------------------------------------
def test_broken_listing_selector_drops_only_that_card(fakes, board, settings, store, sink):
    class StrictExtractor(type(board.extractor)):
        def extract_url(self, doc, card):
            # AttributeError on a card without href
            return doc.absolute(card.select_one("a.title[href]").get("href"))

    board = dataclasses.replace(board, extractor=StrictExtractor())
    listing = fakes.listing_html(7).replace("<section>", '<section><div class="job"><a class="title">No link</a></div>')
    fetcher = fakes.FakeFetcher(fakes.with_details({_page(board, 1): listing}, 7))

    report = _loop(board, settings, fetcher, store, sink).run()

    assert [r.url for r in sink.batches[0]] == [fakes.job_url(7)]
    assert report.records_delivered == 1
    # page 2 is missing from the fake site
    assert report.halt_reason == HALT_LISTING_FETCH_FAILED


def test_duplicate_cards_on_a_page_fetch_the_detail_once(fakes, board, settings, store, sink):
    fetcher = fakes.FakeFetcher(fakes.with_details({_page(board, 1): fakes.listing_html(3, 3, 4)}, 3, 4))

    _loop(board, settings, fetcher, store, sink).run()

    assert fetcher.calls.count(fakes.job_url(3)) == 1
    assert sink.sizes == [2]


def test_unusable_dedup_store_still_delivers(fakes, board, settings, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    settings = dataclasses.replace(settings, sqlite_path=str(blocker / "jobcrawl.db"))
    pages = fakes.with_details({board.base_url: fakes.listing_html(1, 2)}, 1, 2)
    sink = fakes.FakeSink()

    summary = run_once(
        settings,
        sites=[board],
        fetcher_factory=lambda s: fakes.FakeFetcher(pages),
        sink_factory=lambda s: sink,
    )

    assert summary["delivered_total"] == 2
    assert sink.sizes == [2]
