# modules/job_crawler/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience.
# Importing .sites registers the built-in site descriptors.
from .config import ConfigError, Settings
from .engine import CrawlScheduler, ScanLoop, run_once
from .models import CandidateRecord, DeliveryBatch, ScanCursor, ScanReport
from .sites import SiteDescriptor, SiteExtractor

__all__ = [
    "CandidateRecord",
    "ConfigError",
    "CrawlScheduler",
    "DeliveryBatch",
    "ScanCursor",
    "ScanLoop",
    "ScanReport",
    "Settings",
    "SiteDescriptor",
    "SiteExtractor",
    "run_once",
]
