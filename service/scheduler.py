# service/scheduler.py
from __future__ import annotations

import logging
import os
import threading
import time as _time
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from datetime import tzinfo as _dt_tzinfo
from typing import Any
from zoneinfo import ZoneInfo

import pytz
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from . import config_schema, runner
from .logging_utils import write_activity_log

LOG = logging.getLogger(__name__)


# ---- Internal structures ----------------------------------------------------


@dataclass(frozen=True, slots=True)
class JobSpec:
    id: str
    trigger: Any  # apscheduler.triggers.base.BaseTrigger
    module: str
    kwargs: dict[str, Any]
    timeout_sec: int | None
    max_instances: int
    coalesce: bool
    misfire_grace_time: int | None
    summary: str | None


# ---- Public controller ------------------------------------------------------


class SchedulerController:
    """Small facade around APScheduler so the CLI can manage lifecycle cleanly."""

    def __init__(self, scheduler: BackgroundScheduler) -> None:
        self._scheduler = scheduler
        self._stopped_evt = threading.Event()

    def stop(self) -> None:
        if self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            # in-flight crawl passes finish their current page on their own
            self._scheduler.shutdown(wait=False)
        self._stopped_evt.set()
        LOG.info("Scheduler shut down complete.")

    def join(self, timeout: float | None = None) -> bool:
        """Block until stopped (or timeout). True if stopped before timeout."""
        return self._stopped_evt.wait(timeout=timeout)

    def get_job_ids(self) -> Iterable[str]:
        return (job.id for job in self._scheduler.get_jobs())


# ---- Module API -------------------------------------------------------------


def build_scheduler(cfg: dict[str, Any]) -> BackgroundScheduler:
    """Create a (not yet started) BackgroundScheduler with every valid job from cfg."""
    tz = _resolve_timezone(cfg)

    # Overlapping crawl passes would double-deliver; one instance per job.
    job_defaults = {"coalesce": True, "max_instances": 1}
    scheduler = BackgroundScheduler(
        timezone=tz,
        job_defaults=job_defaults,
        executors={"default": ThreadPoolExecutor(_int_or(cfg.get("executor_workers"), 4))},
        jobstores={"default": MemoryJobStore()},
    )

    jobs_cfg = cfg.get("jobs", [])
    if not isinstance(jobs_cfg, list):
        raise ValueError("config.jobs must be a list")

    for raw in jobs_cfg:
        try:
            spec = _make_job_spec(raw, default_job_defaults=job_defaults, tz=tz)
        except (ValueError, config_schema.ConfigError):
            LOG.exception("Skipping job due to config error: %r", raw)
            continue
        _add_job(scheduler, spec)
    return scheduler


def start(config_path: str | None = None) -> SchedulerController:
    """
    Load configuration, build the scheduler, add jobs and start it.

    APScheduler 3.x prefers a pytz scheduler timezone; individual triggers may
    carry a zoneinfo timezone of their own.
    """
    cfg = config_schema.load_config(config_path)
    scheduler = build_scheduler(cfg)
    scheduler.start()
    LOG.info("Scheduler started with %d job(s).", len(scheduler.get_jobs()))
    return SchedulerController(scheduler)


# ---- Helpers ----------------------------------------------------------------


def _preview_trigger(trigger, tz, count: int = 6, start=None) -> list[datetime]:
    """
    Next `count` fire times of `trigger`, for logs and tests.

    Seeds previous_fire_time = now = `start` and moves `now` 1us past each hit.
    """
    now = start or datetime.now(tz=tz)
    prev = now
    times = []
    for _ in range(count):
        nxt = trigger.get_next_fire_time(prev, now)
        if nxt is None:
            break
        times.append(nxt)
        prev = nxt
        now = nxt + timedelta(microseconds=1)
    return times


def _resolve_timezone(cfg: dict[str, Any]):
    """config['timezone'], else env TZ, else UTC (as pytz)."""
    tz_name = cfg.get("timezone") or os.getenv("TZ") or "UTC"
    try:
        return pytz.timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Falling back to UTC timezone (invalid tz '%s')", tz_name)
        return pytz.UTC


def _make_job_spec(raw: dict[str, Any], default_job_defaults: dict[str, Any], tz) -> JobSpec:
    """Convert a raw config job dict into a JobSpec with a built trigger."""
    module = _require(raw, "module")
    jid = str(raw.get("id") or raw.get("name") or module)

    kind, value = config_schema.trigger_spec(raw)
    trigger = _build_trigger({kind: value}, tz)

    return JobSpec(
        id=jid,
        trigger=trigger,
        module=module,
        kwargs=dict(raw.get("kwargs") or {}),
        timeout_sec=_int_or(raw.get("timeout_sec"), None),
        max_instances=_int_or(raw.get("max_instances"), default_job_defaults.get("max_instances", 1)),
        coalesce=bool(raw.get("coalesce", default_job_defaults.get("coalesce", True))),
        misfire_grace_time=_int_or(raw.get("misfire_grace_time"), None),
        summary=raw.get("summary") or raw.get("description"),
    )


def _tz(z):
    if not z:
        return None
    if isinstance(z, _dt_tzinfo):
        return z
    return ZoneInfo(str(z))


def _build_trigger(trig_def: dict[str, Any], tz) -> Any:
    """
    Build an APScheduler trigger from a dict.

    Supported shapes:
      {"interval": {weeks|days|hours|minutes|seconds, jitter?, start_date?, end_date?, timezone?}}
      {"cron":     {second?, minute?, hour?, day?, day_of_week?, month?, jitter?, timezone?, ...}}
      {"cron":     "*/15 * * * *"}
      {"date":     {"run_at": ISO|epoch|datetime, timezone?}} or a bare ISO|epoch|datetime
      {"daily_time": "HH:MM"} or {"daily_time": {"time": "HH:MM[:SS]" | [...], day_of_week?, timezone?}}

    A trigger block's own 'timezone' wins over the scheduler tz.
    """
    if not isinstance(trig_def, dict):
        raise ValueError("trigger spec must be a dict")

    default_tz = _tz(tz)

    present = [k for k in ("interval", "cron", "date", "daily_time") if trig_def.get(k) is not None]
    if len(present) != 1:
        raise ValueError("exactly one of {'interval','cron','date','daily_time'} must be provided")
    kind = present[0]

    if kind == "interval":
        return _interval_trigger(trig_def["interval"], default_tz)
    if kind == "cron":
        return _cron_trigger(trig_def["cron"], default_tz)
    if kind == "date":
        return _date_trigger(trig_def["date"], default_tz)
    return _daily_time_trigger(trig_def["daily_time"], default_tz)


def _interval_trigger(spec: Any, default_tz) -> IntervalTrigger:
    if not isinstance(spec, dict):
        raise ValueError("interval must be an object with time fields")

    allowed = {"weeks", "days", "hours", "minutes", "seconds", "jitter", "timezone", "start_date", "end_date"}
    unknown = set(spec.keys()) - allowed
    if unknown:
        raise ValueError(f"interval has unknown field(s): {sorted(unknown)}")

    def _as_int_ge0(name: str) -> int:
        if name not in spec:
            return 0
        try:
            v = int(spec[name])
        except (TypeError, ValueError) as err:
            raise ValueError(f"interval.{name} must be an integer") from err
        if v < 0:
            raise ValueError(f"interval.{name} must be >= 0")
        return v

    kwargs: dict[str, Any] = {}
    for name in ("weeks", "days", "hours", "minutes", "seconds"):
        v = _as_int_ge0(name)
        if v:
            kwargs[name] = v
    if not kwargs:
        raise ValueError("interval must be greater than 0 (provide at least one nonzero time field)")

    jitter = _as_int_ge0("jitter")
    if jitter:
        kwargs["jitter"] = jitter
    for key in ("start_date", "end_date"):
        if key in spec:
            kwargs[key] = spec[key]

    return IntervalTrigger(timezone=_tz(spec.get("timezone")) or default_tz, **kwargs)


def _cron_trigger(cron_spec: Any, default_tz) -> CronTrigger:
    if isinstance(cron_spec, str):
        fields = cron_spec.strip().split()
        if len(fields) != 5:
            raise ValueError(f"cron string must have 5 fields (got {len(fields)}): {cron_spec!r}")
        return CronTrigger.from_crontab(cron_spec, timezone=default_tz)
    if not isinstance(cron_spec, dict):
        raise ValueError("cron must be a crontab string or an object")

    allowed = {"second", "minute", "hour", "day", "day_of_week", "month", "timezone", "start_date", "end_date", "jitter"}
    unknown = set(cron_spec.keys()) - allowed
    if unknown:
        raise ValueError(f"cron has unknown field(s): {sorted(unknown)}")

    return CronTrigger(
        second=cron_spec.get("second", 0),
        minute=cron_spec.get("minute", 0),
        hour=cron_spec.get("hour", 0),
        day=cron_spec.get("day"),
        day_of_week=cron_spec.get("day_of_week"),
        month=cron_spec.get("month"),
        start_date=cron_spec.get("start_date"),
        end_date=cron_spec.get("end_date"),
        jitter=cron_spec.get("jitter"),
        timezone=_tz(cron_spec.get("timezone")) or default_tz,
    )


def _date_trigger(dspec: Any, default_tz) -> DateTrigger:
    if isinstance(dspec, dict):
        run_at = dspec.get("run_at")
        tzinfo = _tz(dspec.get("timezone")) or default_tz
    else:
        run_at = dspec
        tzinfo = default_tz

    if run_at is None:
        raise ValueError("date trigger requires 'run_at' (or non-empty scalar value)")

    if isinstance(run_at, (int, float)):
        dt = datetime.fromtimestamp(run_at, tz=tzinfo)
    elif isinstance(run_at, datetime):
        dt = run_at if run_at.tzinfo else run_at.replace(tzinfo=tzinfo)
    else:
        try:
            dt = datetime.fromisoformat(str(run_at).replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"Invalid date.run_at: {run_at!r}") from e
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=tzinfo)

    return DateTrigger(run_date=dt, timezone=dt.tzinfo or tzinfo)


def _daily_time_trigger(dtdef: Any, default_tz) -> Any:
    if isinstance(dtdef, str):
        dtdef = {"time": dtdef}
    if not isinstance(dtdef, dict):
        raise ValueError("daily_time must be 'HH:MM' or an object")

    allowed = {"time", "day_of_week", "timezone"}
    unknown = set(dtdef.keys()) - allowed
    if unknown:
        raise ValueError(f"daily_time has unknown field(s): {sorted(unknown)}")

    tzinfo = _tz(dtdef.get("timezone")) or default_tz

    def _parse_time(s: str) -> tuple[int, int, int]:
        parts = s.split(":")
        if len(parts) not in (2, 3):
            raise ValueError(f"daily_time.time must be 'HH:MM' or 'HH:MM:SS', got {s!r}")
        try:
            hh, mm = int(parts[0]), int(parts[1])
            ss = int(parts[2]) if len(parts) == 3 else 0
        except ValueError as err:
            raise ValueError(f"daily_time.time must contain integers: {s!r}") from err
        time(hh, mm, ss)  # validates ranges
        return hh, mm, ss

    times = dtdef.get("time")
    if times is None:
        raise ValueError("daily_time requires 'time'")
    if isinstance(times, str):
        times = [times]

    per_time_triggers = [
        CronTrigger(second=s, minute=m, hour=h, day_of_week=dtdef.get("day_of_week"), timezone=tzinfo)
        for h, m, s in sorted({_parse_time(str(t)) for t in times})
    ]
    return per_time_triggers[0] if len(per_time_triggers) == 1 else OrTrigger(per_time_triggers)


def _add_job(scheduler: BackgroundScheduler, spec: JobSpec) -> None:
    """
    Register the job with a wrapper that logs start/finish, runs the module
    via runner.run_module_once() and writes a structured activity record.
    """

    def _job_wrapper():
        started = _time.monotonic()
        LOG.info("Job[%s] starting (module=%s)", spec.id, spec.module)
        try:
            meta, run_id = runner.run_module_once(
                spec.module,
                kwargs=dict(spec.kwargs or {}),
                timeout_sec=spec.timeout_sec,
                trigger_type="scheduled",
                job_context=_build_job_context(spec),
            )
        except Exception:
            LOG.exception("Job[%s] raised an exception.", spec.id)
            _write_activity(spec, status="error", duration_s=_time.monotonic() - started)
            return

        duration = _time.monotonic() - started
        LOG.info("Job[%s] finished in %.3fs (run_id=%s)", spec.id, duration, run_id)
        _write_activity(spec, status="ok", duration_s=duration, meta=meta)

    scheduler.add_job(
        func=_job_wrapper,
        trigger=spec.trigger,
        id=spec.id,
        max_instances=spec.max_instances,
        coalesce=spec.coalesce,
        misfire_grace_time=spec.misfire_grace_time,
        replace_existing=True,
    )

    if os.getenv("SCHEDULER_PREVIEW") == "1":
        preview = _preview_trigger(spec.trigger, scheduler.timezone, count=int(os.getenv("SCHEDULER_PREVIEW_COUNT", "6")))
        LOG.info("Preview[%s]: %s", spec.id, ", ".join(t.isoformat() for t in preview) or "(none)")

    LOG.debug(
        "Registered job[%s] (module=%s, summary=%r, trigger=%s, max_instances=%s, coalesce=%s, misfire_grace_time=%s)",
        spec.id,
        spec.module,
        spec.summary,
        spec.trigger,
        spec.max_instances,
        spec.coalesce,
        spec.misfire_grace_time,
    )


def _write_activity(spec: JobSpec, status: str, duration_s: float, meta: dict | None = None) -> None:
    """Best-effort activity record; never fails the job."""
    try:
        write_activity_log({
            "ts": datetime.now(timezone.utc).isoformat(),
            "source": "scheduler",
            "event": "job_run",
            "fields": {
                "job_id": spec.id,
                "module": spec.module,
                "status": status,
                "duration_ms": int(duration_s * 1000),
                "summary": spec.summary,
                "delivered_total": (meta or {}).get("delivered_total"),
            },
        })
    except (OSError, TypeError, ValueError):
        LOG.debug("write_activity_log failed for job[%s]", spec.id, exc_info=True)


def _require(d: dict[str, Any], key: str) -> Any:
    if key not in d or d[key] in (None, ""):
        raise ValueError(f"Missing required key: {key}")
    return d[key]


def _int_or(v: Any, default: int | None) -> int | None:
    """int(v), or default if v is None/invalid (lenient for config)."""
    try:
        return int(v) if v is not None else default
    except (TypeError, ValueError):
        return default


def _build_job_context(spec: JobSpec) -> dict:
    return {
        "job_id": spec.id,
        "module": spec.module,
        "now_iso": datetime.now(timezone.utc).isoformat(),
    }
