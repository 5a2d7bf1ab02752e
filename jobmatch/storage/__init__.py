"""
Durable storage for jobmatch.

SQLite-backed parse cache and job posting dedup store.
"""

from .cache import ParseCache, compute_cache_key
from .db import Storage
from .job_store import JobStore
from .models import CacheEntry, CacheStats, JobRecord, JobStatus

__all__ = [
    "CacheEntry",
    "CacheStats",
    "JobRecord",
    "JobStatus",
    "JobStore",
    "ParseCache",
    "Storage",
    "compute_cache_key",
]
