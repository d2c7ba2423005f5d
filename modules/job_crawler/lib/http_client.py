# job_crawler/http_client.py
from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin

import requests
from bs4 import BeautifulSoup, Tag
from requests.adapters import HTTPAdapter

LOG = logging.getLogger(__name__)

# Listing sites reject bare clients; look like a mobile browser.
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Linux; Android 6.0; Nexus 5 Build/MRA58N) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/123.0.0.0 Mobile Safari/537.36"
)
DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,*/*;q=0.8",
    "Accept-Language": "nb-NO,nb;q=0.9",
    "Accept-Encoding": "gzip, deflate",
}

CONNECT_TRIES = 3
WAIT_BEFORE_RECONNECT_SECONDS = 5.0


class FetchError(Exception):
    """Raised when a URL could not be fetched after all tries."""

    def __init__(self, url: str, attempts: int, last_error: BaseException | None = None) -> None:
        super().__init__(f"Could not fetch {url!r} after {attempts} tries: {last_error!r}")
        self.url = url
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class Document:
    """A parsed HTML page plus the URL it was loaded from (for absolute links)."""

    url: str
    soup: BeautifulSoup

    def select(self, css: str) -> list[Tag]:
        return list(self.soup.select(css))

    def select_one(self, css: str) -> Tag | None:
        return self.soup.select_one(css)

    def absolute(self, href: str | None) -> str | None:
        if not href:
            return None
        return urljoin(self.url, href.strip())


def parse_html(html: str, url: str) -> Document:
    return Document(url=url, soup=BeautifulSoup(html, "html.parser"))


class HttpClient:
    """Shared HTTP session with browser-like defaults."""

    def __init__(
        self,
        timeout: float = 10.0,
        user_agent: str = DEFAULT_USER_AGENT,
        headers: Mapping[str, str] | None = None,
    ):
        self.timeout = float(timeout)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent, **DEFAULT_HEADERS, **dict(headers or {})})

        # Retries are owned by Fetcher (fixed backoff), not by urllib3.
        adapter = HTTPAdapter(max_retries=0, pool_connections=10, pool_maxsize=20)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def get_text(
        self,
        url: str,
        *,
        timeout: float | None = None,
        encoding: str | None = None,
        **kwargs: Any,
    ) -> str:
        """GET and return decoded text; non-2xx raises requests.HTTPError."""
        resp = self.session.get(url, timeout=timeout or self.timeout, **kwargs)
        resp.raise_for_status()
        if encoding:
            resp.encoding = encoding
        elif not resp.encoding and resp.apparent_encoding:
            resp.encoding = resp.apparent_encoding
        return resp.text

    def post_json(self, url: str, payload: Any, *, timeout: float | None = None) -> requests.Response:
        return self.session.post(url, json=payload, timeout=timeout or self.timeout)

    def close(self) -> None:
        self.session.close()


class Fetcher:
    """
    Resolve a URL into a parsed Document with bounded retries.

    Every requests error (timeouts, connection errors, non-2xx statuses) is
    retried up to `tries` times with a fixed sleep between attempts. Whether a
    final failure is fatal is the caller's decision.
    """

    def __init__(
        self,
        client: HttpClient | None = None,
        *,
        tries: int = CONNECT_TRIES,
        backoff_seconds: float = WAIT_BEFORE_RECONNECT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client or HttpClient()
        self.tries = max(1, int(tries))
        self.backoff_seconds = float(backoff_seconds)
        self._sleep = sleep

    def fetch(self, url: str) -> Document:
        last_error: BaseException | None = None
        for attempt in range(1, self.tries + 1):
            try:
                html = self._client.get_text(url)
                return parse_html(html, url)
            except requests.RequestException as e:
                last_error = e
                LOG.warning("Could not get document for %s. Tries=%d: %r", url, attempt, e)
                if attempt < self.tries and self.backoff_seconds > 0:
                    self._sleep(self.backoff_seconds)
        raise FetchError(url, self.tries, last_error)

    def close(self) -> None:
        self._client.close()
