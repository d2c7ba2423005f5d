from __future__ import annotations

import logging
from typing import Any

# Structured records go to service.logging_utils (JSONL files) when the service
# package is importable; otherwise they fall back to stdlib logging.
try:
    from service import logging_utils as _backend  # type: ignore
except ImportError:
    _backend = None

_ACTIVITY_LOG = logging.getLogger("job_crawler.activity")
_ERROR_LOG = logging.getLogger("job_crawler.error")

# Delivery endpoints may carry credentials in their params
_REDACT_KEYS = {
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "authorization",
    "auth",
    "bearer",
}


def _redact_record(record: dict[str, Any]) -> dict[str, Any]:
    """Shallow-copy record and redact secret-like fields at top level."""
    redacted = dict(record)
    for k in list(redacted.keys()):
        lk = str(k).lower()
        if lk in _REDACT_KEYS or lk.endswith("_secret") or lk.endswith("_token"):
            redacted[k] = "***REDACTED***"
    return redacted


def _emit(writer_name: str, fallback: logging.Logger, level: int, record: dict[str, Any]) -> None:
    payload = _redact_record(record)
    writer = getattr(_backend, writer_name, None) if _backend else None
    if writer is not None:
        try:
            writer(payload)
            return
        except (OSError, TypeError, ValueError):
            fallback.debug("%s failed; using stdlib logging", writer_name, exc_info=True)
    fallback.log(level, payload)


def activity(record: dict[str, Any]) -> None:
    """Write a structured activity record (scan start/halt, summaries)."""
    _emit("write_activity_log", _ACTIVITY_LOG, logging.INFO, record)


def error(record: dict[str, Any]) -> None:
    """Write a structured error record (store faults, crashed scans)."""
    _emit("write_error_log", _ERROR_LOG, logging.ERROR, record)
