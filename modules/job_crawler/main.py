from __future__ import annotations

from typing import Any

from .lib.config import Settings
from .lib.engine import run_once as _run_engine
from .lib.logging_bridge import activity as log_activity


def run(**kwargs: Any) -> dict:
    """
    Entry point for the 'job_crawler' module.

    Accepts kwargs (from scheduler/runner), including:
      api_ip / api_port / api_path / api_request_param: delivery endpoint
      disable_delivery: bool = False
      disabled_sites: str | list  (e.g. "finn,karrierestart")
      start_page: int
      debug: bool = False
      sqlite_path: str = "/app/local/state/jobcrawl.db"
      max_threads: int = 0  (one thread per site)
      sites: str | list  (default: every registered site)

    Returns the pass summary: {"message", "by_site", "delivered_total"}.
    """
    settings = Settings.from_kwargs(kwargs)

    log_activity({
        "component": "job_crawler.main",
        "op": "start",
        "identity": settings.identity,
        "disabled_sites": sorted(settings.disabled_sites),
        "flags": {
            "start_page": settings.start_page,
            "debug": settings.debug,
            "disable_delivery": settings.disable_delivery,
        },
    })

    return _run_engine(settings)
