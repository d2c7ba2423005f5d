from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def truthy(v: Any) -> bool:
    """
    Normalize common truthy inputs from env/kwargs.
    Accepts bools or strings like: '1', 'true', 'yes', 'on'.
    """
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    if isinstance(v, (int, float)):
        return v != 0
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "on", "y", "t"}


def now_iso() -> str:
    """
    UTC ISO-8601 timestamp with 'Z' suffix.
    """
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def is_blank(s: str | None) -> bool:
    return s is None or not s.strip()


def remove_whitespace(s: str | None) -> str | None:
    if s is None:
        return None
    return s.replace(" ", "")


def remove_trailing_comma(s: str | None) -> str | None:
    if s is None:
        return None
    return s[:-1] if s.endswith(",") else s


def is_positive_number(s: str | None) -> bool:
    """True for a non-empty string of ASCII digits only ("0" counts)."""
    if not s:
        return False
    return all("0" <= ch <= "9" for ch in s)


def split_csv(raw: Any) -> list[str]:
    """
    Accept "a, b,c" or ["a", "b"] and return lowercase names without whitespace.
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        parts = raw.split(",")
    elif isinstance(raw, (list, tuple, set, frozenset)):
        parts = [str(x) for x in raw]
    else:
        parts = [str(raw)]
    out: list[str] = []
    for p in parts:
        name = "".join(p.split()).lower()
        if name:
            out.append(name)
    return out
