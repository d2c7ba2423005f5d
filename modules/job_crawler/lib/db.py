from __future__ import annotations

import contextlib
import os
import sqlite3
from typing import Protocol

from .logging_bridge import error as log_error
from .utils import now_iso

# ---- Public API -------------------------------------------------------------


def init_db(sqlite_path: str) -> None:
    """
    Ensure the SQLite database and schema exist.
    Safe to call multiple times.
    """
    _ensure_dir(sqlite_path)
    with contextlib.closing(_connect(sqlite_path)) as conn:
        _apply_pragmas(conn)
        _ensure_schema(conn)


def url_exists(sqlite_path: str, url: str, identity: str) -> bool:
    """True if (url, identity) has been recorded. Raises sqlite3.Error."""
    with contextlib.closing(_connect(sqlite_path)) as conn:
        cur = conn.execute(
            "SELECT EXISTS (SELECT 1 FROM visited_urls WHERE url = ? AND identity = ?)",
            (url.strip(), identity.strip()),
        )
        (found,) = cur.fetchone()
    return bool(found)


def insert_url(sqlite_path: str, url: str, identity: str) -> bool:
    """
    Record (url, identity). Returns True if the row is new.
    Raises sqlite3.Error.
    """
    with contextlib.closing(_connect(sqlite_path)) as conn:
        cur = conn.execute(
            """
            INSERT OR IGNORE INTO visited_urls (url, identity, first_seen_utc)
            VALUES (?, ?, ?)
            """,
            (url.strip(), identity.strip(), now_iso()),
        )
        return cur.rowcount == 1


# ---- Nice-to-have helpers for tests & diagnostics --------------------------


def count_rows(sqlite_path: str, identity: str | None = None) -> int:
    """Return rows in visited_urls (optionally for one identity); 0 if DB missing."""
    if not os.path.exists(sqlite_path):
        return 0
    with contextlib.closing(_connect(sqlite_path)) as conn:
        _ensure_schema(conn)
        if identity is None:
            cur = conn.execute("SELECT COUNT(*) FROM visited_urls")
        else:
            cur = conn.execute("SELECT COUNT(*) FROM visited_urls WHERE identity = ?", (identity,))
        (n,) = cur.fetchone()
    return int(n or 0)


def reset_db(sqlite_path: str) -> None:
    """
    Remove the DB file entirely (for pytest fixtures).
    Safe if it doesn't exist.
    """
    with contextlib.suppress(FileNotFoundError):
        os.remove(sqlite_path)


# ---- Store + gate -----------------------------------------------------------


class DedupStore(Protocol):
    def exists(self, url: str, identity: str) -> bool: ...

    def insert(self, url: str, identity: str) -> None: ...


class SqliteDedupStore:
    """
    Durable (url, identity) table. One connection per call, so instances can
    be shared by every scan thread.

    A store that cannot be initialized is still usable: every later call
    raises sqlite3.Error, which DedupGate degrades to "not seen".
    """

    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = sqlite_path
        try:
            init_db(sqlite_path)
        except (sqlite3.Error, OSError) as e:
            log_error({
                "component": "job_crawler.db",
                "op": "init",
                "sqlite_path": sqlite_path,
                "error": repr(e),
            })

    def exists(self, url: str, identity: str) -> bool:
        return url_exists(self.sqlite_path, url, identity)

    def insert(self, url: str, identity: str) -> None:
        insert_url(self.sqlite_path, url, identity)


class DedupGate:
    """
    Filters already-delivered postings for one scraper identity.

    Store faults never escalate: a failed lookup means "not seen" (risking a
    duplicate delivery) and a failed insert is only logged.
    """

    def __init__(self, store: DedupStore, identity: str) -> None:
        self._store = store
        self.identity = identity

    def exists(self, url: str) -> bool:
        try:
            return self._store.exists(url, self.identity)
        except (sqlite3.Error, OSError) as e:
            log_error({
                "component": "job_crawler.db",
                "op": "exists",
                "url": url,
                "identity": self.identity,
                "error": repr(e),
            })
            return False

    def mark_seen(self, url: str) -> None:
        try:
            self._store.insert(url, self.identity)
        except (sqlite3.Error, OSError) as e:
            log_error({
                "component": "job_crawler.db",
                "op": "insert",
                "url": url,
                "identity": self.identity,
                "error": repr(e),
            })

    def mark_all_seen(self, urls: list[str]) -> None:
        for url in urls:
            self.mark_seen(url)


# ---- Internal utilities -----------------------------------------------------


def _ensure_dir(sqlite_path: str) -> None:
    d = os.path.dirname(os.path.abspath(sqlite_path)) or "."
    os.makedirs(d, exist_ok=True)


def _connect(sqlite_path: str) -> sqlite3.Connection:
    # Autocommit; every statement is its own transaction.
    return sqlite3.connect(sqlite_path, timeout=30.0, isolation_level=None)


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS visited_urls (
          id INTEGER PRIMARY KEY,
          url      TEXT NOT NULL,
          identity TEXT NOT NULL,
          first_seen_utc TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS ux_visited_urls_dedupe
          ON visited_urls (url, identity);
        """
    )
