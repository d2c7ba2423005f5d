#!/usr/bin/env python3
"""
Print the most recently seen job URLs from the crawler's dedup store.

    python scripts/print_seen_urls.py [LIMIT] [--db PATH] [--identity IP:PORT]
"""

import argparse
import os
import sqlite3
import sys
from datetime import datetime

# same default as the crawler (Settings.sqlite_path)
DEFAULT_DB = "/app/local/state/jobcrawl.db"


def get_latest_entries(db_path: str, limit: int = 15, identity: str | None = None) -> list[tuple[str, str, str]]:
    """Latest `limit` rows as (identity, url, first_seen_utc), newest first."""
    sql = "SELECT identity, url, first_seen_utc FROM visited_urls"
    params: list[object] = []
    if identity:
        sql += " WHERE identity = ?"
        params.append(identity)
    sql += " ORDER BY first_seen_utc DESC LIMIT ?"
    params.append(limit)

    conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    try:
        return conn.execute(sql, params).fetchall()
    finally:
        conn.close()


def format_timestamp(iso_str: str) -> str:
    """Convert ISO timestamp to readable local format."""
    try:
        dt = datetime.fromisoformat(iso_str.replace("Z", "+00:00"))
    except ValueError:
        return iso_str
    return dt.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")


def main(argv=None) -> int:
    p = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    p.add_argument("limit", nargs="?", type=int, default=15)
    p.add_argument("--db", default=os.getenv("SQLITE_PATH", DEFAULT_DB))
    p.add_argument("--identity", default=None)
    args = p.parse_args(argv)

    if not os.path.exists(args.db):
        print(f"Database not found: {args.db}", file=sys.stderr)
        return 1

    try:
        entries = get_latest_entries(args.db, max(1, args.limit), args.identity)
    except sqlite3.Error as e:
        print(f"Error reading {args.db}: {e}", file=sys.stderr)
        return 1

    print(f"DATABASE: {args.db}")
    print("-" * 80)
    if not entries:
        print("  No entries found.")
        return 0
    for i, (ident, url, ts) in enumerate(entries, 1):
        print(f"{i:2d}. [{format_timestamp(ts)}] {ident}")
        print(f"     URL: {url}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
