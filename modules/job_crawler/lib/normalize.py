"""
Field normalization shared by every site extractor.

  - attribute labels: site-specific (mostly Norwegian) labels -> canonical labels
  - sector values: restricted to Public / Private / "Not specified"
  - deadlines: free-text dates in mixed formats -> datetime.date (or None)
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime

from dateutil import parser as date_parser

from .utils import is_blank, is_positive_number, remove_trailing_comma

log = logging.getLogger(__name__)

SECTOR = "Sector"
NOT_SPECIFIED = "Not specified"
PUBLIC = "Public"
PRIVATE = "Private"

# Keys are lowercase; lookup is case-insensitive.
LABEL_SYNONYMS: dict[str, str] = {
    "adresse": "Location",
    "arbeidssted": "Location",
    "sted": "Location",
    "ansettelsesform": "Employment type",
    "antall stillinger": "Positions",
    "arbeidsdager": "Working days",
    "arbeidsgiver": "Employer",
    "arbeidsspråk": "Working language",
    "arbeidstid": "Working hours",
    "arbeidstidsordning": "Working hours arrangement",
    "bransje": "Industry",
    "heltid/deltid": "Position type",
    "stilling": "Position type",
    "stillingstype": "Position type",
    "hjemmekontor": "Remote work",
    "lederkategori": "Management level",
    "oppstart": "Start date",
    "sektor": SECTOR,
    "stillingsfunksjon": "Job function",
    "stillingstittel": "Job title",
}

_SECTOR_VALUES = {
    "offentlig": PUBLIC,
    "public": PUBLIC,
    "privat": PRIVATE,
    "private": PRIVATE,
}


def canonical_label(raw: str | None) -> str | None:
    """Map a raw field label to its canonical name, or None if unmapped."""
    if raw is None:
        return None
    key = " ".join(raw.split()).rstrip(":").lower()
    return LABEL_SYNONYMS.get(key)


def normalize_sector(value: str | None) -> str:
    if value is None:
        return NOT_SPECIFIED
    return _SECTOR_VALUES.get(value.strip().lower(), NOT_SPECIFIED)


def normalize_attributes(
    pairs: Iterable[tuple[str, str]] | Mapping[str, Iterable[str]],
    *,
    source_url: str | None = None,
) -> dict[str, set[str]]:
    """
    Build the canonical attribute map from raw (label, value) pairs.

    Unmapped labels are dropped, values are deduplicated per label and the
    Sector key is always present.
    """
    if isinstance(pairs, Mapping):
        flat = [(label, v) for label, values in pairs.items() for v in values]
    else:
        flat = list(pairs)

    out: dict[str, set[str]] = {}
    for raw_label, raw_value in flat:
        key = canonical_label(raw_label)
        if key is None:
            continue
        value = remove_trailing_comma((raw_value or "").strip())
        if is_blank(value):
            continue
        value = value.strip()
        if key == SECTOR:
            value = normalize_sector(value)
        elif len(value) == 1 and not is_positive_number(value):
            # delivered as-is; only flagged
            log.warning("Suspicious one-character value %r for %r at %s", value, key, source_url)
        out.setdefault(key, set()).add(value)

    if SECTOR not in out:
        out[SECTOR] = {NOT_SPECIFIED}
    return out


def split_tags(raw: str | None) -> set[str]:
    """Split "java, python,sql," into {"java", "python", "sql"}."""
    if is_blank(raw):
        return set()
    out: set[str] = set()
    for part in raw.split(","):
        tag = remove_trailing_comma(part.strip())
        if tag:
            out.add(tag)
    return out


# -----------------------------------------------------------------------------
# Deadlines
# -----------------------------------------------------------------------------
_MONTHS: dict[str, int] = {
    "januar": 1, "jan": 1, "january": 1,
    "februar": 2, "feb": 2, "february": 2,
    "mars": 3, "mar": 3, "march": 3,
    "april": 4, "apr": 4,
    "mai": 5, "may": 5,
    "juni": 6, "jun": 6, "june": 6,
    "juli": 7, "jul": 7, "july": 7,
    "august": 8, "aug": 8,
    "september": 9, "sep": 9, "sept": 9,
    "oktober": 10, "okt": 10, "oct": 10, "october": 10,
    "november": 11, "nov": 11,
    "desember": 12, "des": 12, "dec": 12, "december": 12,
}  # fmt: skip

_NUMERIC_DATE_RE = re.compile(r"(?<!\d)(\d{1,2})[./-](\d{1,2})[./-](\d{4}|\d{2})(?!\d)")
_NAMED_DATE_RE = re.compile(r"(?<!\d)(\d{1,2})\.?\s*([a-zæøå]+)\.?\s*(\d{4})?", re.IGNORECASE)
_ISO_DATE_RE = re.compile(r"(?<!\d)(\d{4})-(\d{2})-(\d{2})(?!\d)")


def parse_deadline(text: str | None, *, today: date | None = None) -> date | None:
    """
    Normalize a free-text deadline to a date.

    Handles "24.12.2025", "24. desember 2025", "24.desember2025",
    "Søk innen 24. desember" (year defaults to the current one), ISO dates,
    and whatever python-dateutil understands as a day-first date. Text
    without a usable date ("Snarest", "Løpende") yields None.
    """
    if is_blank(text):
        return None
    s = " ".join(text.split())
    if not any(ch.isdigit() for ch in s):
        return None
    year_default = (today or date.today()).year

    try:
        m = _ISO_DATE_RE.search(s)
        if m:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

        m = _NUMERIC_DATE_RE.search(s)
        if m:
            day, month, year = int(m.group(1)), int(m.group(2)), int(m.group(3))
            if year < 100:
                year += 2000
            return date(year, month, day)

        for m in _NAMED_DATE_RE.finditer(s):
            month = _MONTHS.get(m.group(2).lower())
            if month is None:
                continue
            year = int(m.group(3)) if m.group(3) else year_default
            return date(year, month, int(m.group(1)))
    except ValueError:
        log.debug("Out-of-range deadline %r", text)
        return None

    try:
        return date_parser.parse(s, dayfirst=True, default=datetime(year_default, 1, 1)).date()
    except (ValueError, OverflowError):
        log.debug("Unparseable deadline %r", text)
        return None