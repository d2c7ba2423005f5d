# tests/conftest.py
import os
import tempfile
import threading
import types

import pytest
from freezegun import freeze_time

from modules.job_crawler.lib.config import Settings
from modules.job_crawler.lib.http_client import FetchError, parse_html
from modules.job_crawler.lib.sites.base import SiteDescriptor, SiteExtractor, own_text, select_abs_attr, select_text


# ---------------------------------------------------------------------
# Live tests are opt-in: use --live or RUN_LIVE_TESTS=1
# ---------------------------------------------------------------------
def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--live",
        action="store_true",
        default=False,
        help="Run tests marked as 'live' (network calls against the real job sites).",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "live: marks tests that perform live network calls (skipped by default).",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_live = config.getoption("--live") or os.getenv("RUN_LIVE_TESTS") == "1"
    if run_live:
        return
    skip_live = pytest.mark.skip(reason="live tests disabled (use --live or RUN_LIVE_TESTS=1)")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------
# Test-wide env defaults (autouse, function-scoped)
# ---------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _env_defaults(monkeypatch):
    # Write logs to a throwaway dir so real logs stay clean (per test)
    tmp_logs = tempfile.mkdtemp(prefix="jc-pytest-logs-")
    monkeypatch.setenv("LOG_DIR", tmp_logs)
    monkeypatch.setenv("ACTIVITY_LOG_PREFIX", "activity-test")
    monkeypatch.setenv("ERROR_LOG_PREFIX", "error-test")
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    yield


@pytest.fixture
def frozen_2025():
    with freeze_time("2025-03-01T12:00:00Z"):
        yield


# ---------------------------------------------------------------------
# Fake collaborators for the scan loop
# ---------------------------------------------------------------------
class FakeFetcher:
    """
    Serve HTML from a dict {url: html}. A missing URL, or a value that is an
    exception instance, raises FetchError as if all retries were used up.
    """

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.calls: list[str] = []
        self.closed = False

    def fetch(self, url):
        self.calls.append(url)
        page = self.pages.get(url)
        if page is None or isinstance(page, BaseException):
            raise FetchError(url, 3, page)
        return parse_html(page, url)

    def close(self):
        self.closed = True


class FakeSink:
    """Record every posted batch. `result` may be a bool or an exception to raise."""

    def __init__(self, result=True):
        self.result = result
        self.batches: list[list] = []

    def post(self, records):
        self.batches.append(list(records))
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result

    @property
    def sizes(self):
        return [len(b) for b in self.batches]


class MemoryStore:
    """Thread-safe in-memory (url, identity) store."""

    def __init__(self):
        self.rows: set[tuple[str, str]] = set()
        self._lock = threading.Lock()

    def exists(self, url, identity):
        with self._lock:
            return (url, identity) in self.rows

    def insert(self, url, identity):
        with self._lock:
            self.rows.add((url, identity))


# ---------------------------------------------------------------------
# A tiny fake job board: listing cards <div class="job"> + detail pages
# ---------------------------------------------------------------------
BOARD = "https://jobs.example.test"


class BoardExtractor(SiteExtractor):
    def extract_url(self, doc, card):
        return select_abs_attr(doc, card, "a.title[href]", "href")

    def extract_title(self, doc, card):
        return select_text(card, "a.title")

    def extract_company_name(self, doc):
        return select_text(doc, "p.company")

    def extract_description(self, doc):
        return select_text(doc, "div.desc")

    def extract_deadline_text(self, doc):
        return select_text(doc, "span.deadline")

    def extract_tags(self, doc):
        return {own_text(li) for li in doc.select("ul.tags > li")}

    def extract_raw_attributes(self, doc):
        return [(own_text(dt), own_text(dt.find_next_sibling("dd"))) for dt in doc.select("dl > dt")]

    def extract_max_page(self, doc):
        last = doc.select_one("nav.pages a:last-child")
        return int(own_text(last)) if last is not None and own_text(last).isdigit() else None


def make_board(name="board", *, bounded=False, page_param=None):
    kw = {}
    if page_param is not None:
        kw["page_param"] = page_param
    return SiteDescriptor(
        name=name,
        base_url=f"{BOARD}/{name}",
        page_url=f"{BOARD}/{name}?page={{page}}",
        card_selector="div.job",
        extractor=BoardExtractor(),
        bounded=bounded,
        **kw,
    )


def listing_html(*job_ids, max_page=None):
    cards = "".join(f'<div class="job"><a class="title" href="/jobs/{j}">Job {j}</a></div>' for j in job_ids)
    nav = ""
    if max_page is not None:
        nav = '<nav class="pages">' + "".join(f'<a href="?page={i}">{i}</a>' for i in range(1, max_page + 1)) + "</nav>"
    return f"<html><body><section>{cards}</section>{nav}</body></html>"


def detail_html(job_id, *, company="Acme AS", description="Great job", sector="Privat"):
    company_html = f'<p class="company">{company}</p>' if company else ""
    desc_html = f'<div class="desc">{description}</div>' if description else ""
    return (
        "<html><body>"
        f"{company_html}{desc_html}"
        '<span class="deadline">24.12.2025</span>'
        '<ul class="tags"><li>python</li><li>sql</li></ul>'
        f"<dl><dt>Arbeidssted</dt><dd>Oslo</dd><dt>Sektor</dt><dd>{sector}</dd><dt>Foobar</dt><dd>x</dd></dl>"
        f"<p>ref {job_id}</p>"
        "</body></html>"
    )


def job_url(job_id):
    return f"{BOARD}/jobs/{job_id}"


def with_details(pages, *job_ids, **detail_kw):
    for j in job_ids:
        pages[job_url(j)] = detail_html(j, **detail_kw)
    return pages


@pytest.fixture
def board():
    return make_board()


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture
def settings(tmp_path):
    return Settings.from_kwargs({
        "api_ip": "10.0.0.5",
        "api_port": 8080,
        "api_path": "api/jobs",
        "api_request_param": "jobPosts",
        "sqlite_path": str(tmp_path / "jobcrawl.db"),
        "fetch_backoff_seconds": 0,
    })


@pytest.fixture
def fakes():
    """Helpers for building fake job boards in tests."""
    return types.SimpleNamespace(
        FakeFetcher=FakeFetcher,
        FakeSink=FakeSink,
        MemoryStore=MemoryStore,
        make_board=make_board,
        listing_html=listing_html,
        detail_html=detail_html,
        job_url=job_url,
        with_details=with_details,
        BOARD=BOARD,
    )
