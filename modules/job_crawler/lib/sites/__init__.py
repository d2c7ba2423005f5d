# job_crawler/sites/__init__.py
from __future__ import annotations

# Importing the site modules registers their descriptors.
from . import arbeidsplassen, finn, karrierestart
from .base import ExtractionError, SiteDescriptor, SiteExtractor
from .registry import all_sites, get, register

__all__ = [
    "ExtractionError",
    "SiteDescriptor",
    "SiteExtractor",
    "all_sites",
    "arbeidsplassen",
    "finn",
    "get",
    "karrierestart",
    "register",
]
