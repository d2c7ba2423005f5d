from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .delivery import DeliverySink, DisabledSink, RestApiSink, build_post_url
from .governor import FAILURE_THRESHOLD
from .http_client import CONNECT_TRIES, WAIT_BEFORE_RECONNECT_SECONDS
from .utils import is_positive_number, split_csv, truthy

DEFAULT_SQLITE_PATH = "/app/local/state/jobcrawl.db"


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


# -----------------------------
# Models
# -----------------------------
@dataclass(frozen=True)
class Settings:
    """
    Immutable configuration for one 'job_crawler' pass.

    Resolved once before any scan starts and passed explicitly to the
    scheduler and every scan loop.
    """

    # Runtime flags
    disabled_sites: frozenset[str] = field(default_factory=frozenset)
    start_page: int | None = None
    debug: bool = False

    # Delivery endpoint
    api_ip: str = ""
    api_port: str = ""
    api_path: str = ""
    api_request_param: str = ""
    disable_delivery: bool = False

    # Runtime behavior
    sqlite_path: str = DEFAULT_SQLITE_PATH
    max_threads: int = 0  # 0 = one worker per site
    sites: tuple[str, ...] = ()  # empty = every registered site

    # Fetch / governor tuning
    fetch_tries: int = CONNECT_TRIES
    fetch_backoff_seconds: float = WAIT_BEFORE_RECONNECT_SECONDS
    fetch_timeout: float = 10.0
    failure_threshold: int = FAILURE_THRESHOLD

    # ------------- convenience -------------
    @property
    def identity(self) -> str:
        """Dedup scope: the delivery destination this installation posts to."""
        if self.api_port:
            return f"{self.api_ip}:{self.api_port}"
        return self.api_ip

    @property
    def post_url(self) -> str:
        return build_post_url(self.api_ip, self.api_port, self.api_path)

    def is_site_disabled(self, name: str) -> bool:
        return name.strip().lower() in self.disabled_sites

    def build_sink(self) -> DeliverySink:
        if self.disable_delivery:
            return DisabledSink()
        return RestApiSink(self.post_url, self.api_request_param)

    # ------------- constructors -------------
    @classmethod
    def from_kwargs(cls, kwargs: Mapping[str, Any] | None) -> Settings:
        """
        Build Settings from kwargs with validation.

        Expected kwargs (all optional unless stated otherwise):

            disabled_sites: str | list  # "finn, karrierestart"
            start_page: int             # first page to scan on every site
            debug: bool = false

            api_ip: str                 # required unless disable_delivery
            api_port: str | int
            api_path: str
            api_request_param: str      # required unless disable_delivery
            disable_delivery: bool = false

            sqlite_path: str = "/app/local/state/jobcrawl.db"
            max_threads: int = 0
            sites: str | list

            fetch_tries: int = 3
            fetch_backoff_seconds: float = 5.0
            fetch_timeout: float = 10.0
            failure_threshold: int = 5
        """
        kw = dict(kwargs or {})

        start_page = None
        raw_start = kw.get("start_page")
        if raw_start not in (None, ""):
            raw_start = str(raw_start).strip()
            if not is_positive_number(raw_start):
                raise ConfigError(f"'start_page' must be a positive integer, got {raw_start!r}.")
            start_page = int(raw_start)
            if start_page < 1:
                raise ConfigError("'start_page' must be >= 1.")

        api_port = kw.get("api_port")
        api_port = "" if api_port is None else str(api_port).strip()

        try:
            settings = cls(
                disabled_sites=frozenset(split_csv(kw.get("disabled_sites"))),
                start_page=start_page,
                debug=truthy(kw.get("debug")),
                api_ip=str(kw.get("api_ip") or "").strip(),
                api_port=api_port,
                api_path=str(kw.get("api_path") or "").strip(),
                api_request_param=str(kw.get("api_request_param") or "").strip(),
                disable_delivery=truthy(kw.get("disable_delivery")),
                sqlite_path=str(kw.get("sqlite_path") or DEFAULT_SQLITE_PATH),
                max_threads=int(kw.get("max_threads") or 0),
                sites=tuple(split_csv(kw.get("sites"))),
                fetch_tries=int(_given_or(kw, "fetch_tries", CONNECT_TRIES)),
                fetch_backoff_seconds=float(_given_or(kw, "fetch_backoff_seconds", WAIT_BEFORE_RECONNECT_SECONDS)),
                fetch_timeout=float(kw.get("fetch_timeout") or 10.0),
                failure_threshold=int(_given_or(kw, "failure_threshold", FAILURE_THRESHOLD)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid job_crawler settings: {e}") from e

        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def _given_or(kw: Mapping[str, Any], key: str, default: Any) -> Any:
    """kw[key] unless missing, None or blank; an explicit 0 is kept for validation."""
    v = kw.get(key)
    if v is None or (isinstance(v, str) and not v.strip()):
        return default
    return v


def _validate_settings(s: Settings) -> None:
    if s.api_ip.lower().startswith("http"):
        raise ConfigError("'api_ip' must be a bare host or IP without an http:// scheme.")
    if s.api_port and not is_positive_number(s.api_port):
        raise ConfigError(f"'api_port' must be numeric, got {s.api_port!r}.")
    if not s.disable_delivery:
        if not s.api_ip:
            raise ConfigError("'api_ip' is required unless 'disable_delivery' is set.")
        if not s.api_request_param:
            raise ConfigError("'api_request_param' is required unless 'disable_delivery' is set.")

    if s.max_threads < 0:
        raise ConfigError("'max_threads' must be >= 0.")
    if not s.sqlite_path.strip():
        raise ConfigError("'sqlite_path' cannot be empty.")
    if s.fetch_tries < 1:
        raise ConfigError("'fetch_tries' must be >= 1.")
    if s.fetch_backoff_seconds < 0:
        raise ConfigError("'fetch_backoff_seconds' must be >= 0.")
    if s.fetch_timeout <= 0:
        raise ConfigError("'fetch_timeout' must be > 0.")
    if s.failure_threshold < 1:
        raise ConfigError("'failure_threshold' must be >= 1.")
