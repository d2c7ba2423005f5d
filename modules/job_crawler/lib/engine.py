"""
Crawl engine: one scan loop per site, all sites in parallel.

Per site the loop walks listing pages until the pagination predicate fails or
the failure governor halts it:

    listing page -> cards -> (dedup check) -> detail page -> valid record
                 -> batch -> delivery sink -> mark seen on success

Collaborators (fetcher, dedup store, sink) are injectable for tests.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed

from bs4 import Tag

from . import logging_bridge
from .config import ConfigError, Settings
from .db import DedupGate, DedupStore, SqliteDedupStore
from .delivery import DeliverySink
from .governor import FailureGovernor
from .http_client import Document, Fetcher, FetchError, HttpClient
from .models import (
    HALT_CRASHED,
    HALT_DISABLED,
    HALT_DISCOVERY_FAILED,
    HALT_MAX_PAGE,
    CandidateRecord,
    DeliveryBatch,
    ScanCursor,
    ScanReport,
)
from .pagination import advance, current_url, discover_max_page, should_continue
from .sites import ExtractionError, SiteDescriptor
from .sites import registry

log = logging.getLogger(__name__)

# Scan loop states
IDLE = "idle"
RUNNING = "running"
HALTED = "halted"


# =============================================================================
# SCAN LOOP (ONE SITE)
# =============================================================================
class ScanLoop:
    """
    Idle -> Running -> Halted for a single site.

    Halted is absorbing: calling run() again returns the same report without
    touching the network.
    """

    def __init__(
        self,
        descriptor: SiteDescriptor,
        settings: Settings,
        fetcher: Fetcher,
        gate: DedupGate,
        sink: DeliverySink,
        governor: FailureGovernor | None = None,
    ) -> None:
        self.descriptor = descriptor
        self.settings = settings
        self.fetcher = fetcher
        self.gate = gate
        self.sink = sink
        self.governor = governor or FailureGovernor(settings.failure_threshold)
        self.cursor = ScanCursor(page=settings.start_page or descriptor.initial_page)
        self.report = ScanReport(site=descriptor.name)
        self.state = IDLE

    def run(self) -> ScanReport:
        if self.state != IDLE:
            return self.report

        t0 = time.perf_counter_ns()
        name = self.descriptor.name
        cursor = self.cursor

        if self.settings.is_site_disabled(name):
            log.info("Scraper %s is disabled", name)
            cursor.halt(HALT_DISABLED)
            return self._finish(t0)

        if self.descriptor.bounded:
            max_page = discover_max_page(self.descriptor, self.fetcher)
            if max_page is None:
                cursor.halt(HALT_DISCOVERY_FAILED)
                return self._finish(t0)
            cursor.max_page = max_page

        self.state = RUNNING
        logging_bridge.activity({
            "component": "job_crawler.engine",
            "op": "scan_start",
            "site": name,
            "page": cursor.page,
            "max_page": cursor.max_page,
        })

        while should_continue(cursor):
            self._scan_page()
            if cursor.continue_scan:
                advance(cursor)

        if cursor.continue_scan:
            # only a bounded site runs out of pages without a halt
            cursor.halt(HALT_MAX_PAGE)
        return self._finish(t0)

    # -------------------------------------------------------------------------
    # One listing page
    # -------------------------------------------------------------------------
    def _scan_page(self) -> None:
        cursor = self.cursor
        url = current_url(self.descriptor, cursor)
        log.info("Scraping %s", url)

        try:
            doc = self.fetcher.fetch(url)
        except FetchError as e:
            self.governor.listing_fetch_failed(cursor, e)
            return
        self.report.pages_fetched += 1

        cards = doc.select(self.descriptor.card_selector)
        if not cards:
            self.report.empty_pages += 1
            self.governor.record_empty_page(cursor, url)
            return

        batch = DeliveryBatch(site=self.descriptor.name, page_url=url)
        seen_on_page: set[str] = set()
        for card in cards:
            record = self._build_record(doc, card, seen_on_page)
            if record is not None:
                batch.records.append(record)

        log.info("Of %d elements %d records were built from %s", len(cards), len(batch), url)
        self.report.records_built += len(batch)
        if batch:
            self._deliver(batch)

    def _build_record(self, doc: Document, card: Tag, seen_on_page: set[str]) -> CandidateRecord | None:
        extractor = self.descriptor.extractor
        try:
            record = extractor.start_record(doc, card)
        except (ExtractionError, AttributeError, TypeError, ValueError) as e:
            log.warning("Skipping listing element: %r", e)
            return None

        # one detail fetch per url per page
        if record.url in seen_on_page:
            return None
        seen_on_page.add(record.url)

        if self.gate.exists(record.url):
            log.debug("Already seen %s", record.url)
            return None

        try:
            detail = self.fetcher.fetch(record.url)
        except FetchError as e:
            log.warning("Dropping %s: %s", record.url, e)
            return None

        try:
            extractor.complete_record(record, detail)
        except (ExtractionError, AttributeError, TypeError, ValueError) as e:
            log.warning("Could not extract details from %s: %r", record.url, e)
            return None

        if self.settings.debug:
            log.info("Built %s", record.summary())

        if not record.is_valid():
            log.debug("Invalid record dropped: %s", record.url)
            return None
        return record

    def _deliver(self, batch: DeliveryBatch) -> None:
        try:
            delivered = self.sink.post(batch.records)
        except Exception as e:
            self.governor.delivery_failed(self.cursor, e)
            return

        if not delivered:
            log.warning("Batch of %d from %s was not delivered; not marking seen", len(batch), batch.page_url)
            return

        self.gate.mark_all_seen(batch.urls())
        self.report.records_delivered += len(batch)
        self.report.batches_delivered.append(len(batch))

    def _finish(self, t0: int) -> ScanReport:
        self.state = HALTED
        self.report.halt_reason = self.cursor.halt_reason
        self.report.duration_us = int((time.perf_counter_ns() - t0) // 1000)
        logging_bridge.activity({
            "component": "job_crawler.engine",
            "op": "scan_halted",
            "site": self.descriptor.name,
            **self.report.as_dict(),
        })
        return self.report


# =============================================================================
# CRAWL SCHEDULER (ALL SITES)
# =============================================================================
def _default_fetcher_factory(settings: Settings) -> Fetcher:
    return Fetcher(
        HttpClient(timeout=settings.fetch_timeout),
        tries=settings.fetch_tries,
        backoff_seconds=settings.fetch_backoff_seconds,
    )


def select_sites(settings: Settings) -> list[SiteDescriptor]:
    """Registered sites named in settings.sites, or all of them."""
    known = registry.all_sites()
    if not settings.sites:
        return list(known.values())
    unknown = [n for n in settings.sites if n not in known]
    if unknown:
        raise ConfigError(f"Unknown site(s): {', '.join(unknown)}. Known: {', '.join(sorted(known))}")
    return [known[n] for n in settings.sites]


class CrawlScheduler:
    """
    Runs one ScanLoop per site on its own thread.

    Sites share only the dedup store; each gets its own fetcher and sink.
    A crash in one site is logged and reported, never propagated.
    """

    def __init__(
        self,
        settings: Settings,
        sites: Iterable[SiteDescriptor] | None = None,
        *,
        fetcher_factory: Callable[[Settings], Fetcher] | None = None,
        sink_factory: Callable[[Settings], DeliverySink] | None = None,
        store: DedupStore | None = None,
    ) -> None:
        self.settings = settings
        self.sites = list(sites) if sites is not None else select_sites(settings)
        self._fetcher_factory = fetcher_factory or _default_fetcher_factory
        self._sink_factory = sink_factory or (lambda s: s.build_sink())
        self._store = store

    def _scan_site(self, descriptor: SiteDescriptor, store: DedupStore) -> ScanReport:
        fetcher = self._fetcher_factory(self.settings)
        try:
            loop = ScanLoop(
                descriptor,
                self.settings,
                fetcher,
                DedupGate(store, self.settings.identity),
                self._sink_factory(self.settings),
            )
            return loop.run()
        finally:
            fetcher.close()

    def run(self) -> dict[str, ScanReport]:
        if not self.sites:
            return {}
        store = self._store if self._store is not None else SqliteDedupStore(self.settings.sqlite_path)
        workers = self.settings.max_threads or len(self.sites)

        reports: dict[str, ScanReport] = {}
        with ThreadPoolExecutor(max_workers=min(len(self.sites), workers)) as pool:
            futures = {pool.submit(self._scan_site, d, store): d.name for d in self.sites}
            for fut in as_completed(futures):
                name = futures[fut]
                try:
                    reports[name] = fut.result()
                except Exception as e:
                    logging_bridge.error({
                        "component": "job_crawler.engine",
                        "op": "scan_site",
                        "site": name,
                        "error": repr(e),
                    })
                    reports[name] = ScanReport(site=name, halt_reason=HALT_CRASHED)
        return reports


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================
def run_once(
    settings: Settings,
    *,
    sites: Iterable[SiteDescriptor] | None = None,
    fetcher_factory: Callable[[Settings], Fetcher] | None = None,
    sink_factory: Callable[[Settings], DeliverySink] | None = None,
    store: DedupStore | None = None,
) -> dict:
    """
    Run one crawl pass over every selected site.

    Returns {"message", "by_site": {name: report dict}, "delivered_total"}.
    """
    start_ns = time.perf_counter_ns()
    scheduler = CrawlScheduler(
        settings,
        sites,
        fetcher_factory=fetcher_factory,
        sink_factory=sink_factory,
        store=store,
    )
    reports = scheduler.run()

    by_site = {name: reports[name].as_dict() for name in sorted(reports)}
    delivered_total = sum(r.records_delivered for r in reports.values())
    total_us = int((time.perf_counter_ns() - start_ns) // 1000)
    msg = f"{delivered_total} job posts delivered across {len(reports)} sites"

    logging_bridge.activity({
        "component": "job_crawler.engine",
        "op": "summary",
        "identity": settings.identity,
        "halt_reasons": {name: r.halt_reason for name, r in reports.items()},
        "delivered_by_site": {name: r.records_delivered for name, r in reports.items()},
        "total_us": total_us,
    })

    return {"message": msg, "by_site": by_site, "delivered_total": delivered_total}
