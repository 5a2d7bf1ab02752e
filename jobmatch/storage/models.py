"""
Data models for storage layer.

Defines the cache entry and job posting records.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


def utc_now() -> datetime:
    """Current time as naive UTC, the form every stored timestamp uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class CacheEntry:
    """A stored parse result keyed by content hash.

    ``response`` holds the metadata of the LLM call that produced the
    value (provider, model, token counts, latency).
    """
    key: str
    value: Any
    created_at: datetime
    response: Dict[str, Any] = field(default_factory=dict)

    def age_seconds(self, now: datetime) -> float:
        return (now - self.created_at).total_seconds()


@dataclass(frozen=True)
class CacheStats:
    """Informational cache statistics."""
    entry_count: int
    total_size_bytes: int
    expired_count: int
    enabled: bool = True
    ttl_days: float = 0

    @property
    def total_size_mb(self) -> str:
        return f"{self.total_size_bytes / (1024.0 * 1024.0):.2f}"


class JobStatus(Enum):
    """Lifecycle status of a job posting."""
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True)
class JobRecord:
    """A job posting observed on the job board.

    ``job_id`` is the board's identifier and uniquely identifies the
    record. ``first_seen_at`` / ``last_updated_at`` are managed by the
    job store.
    """
    job_id: str
    title: str = ""
    company: str = ""
    company_size: Optional[str] = None
    industry: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    salary: Optional[str] = None
    experience: Optional[str] = None
    education: Optional[str] = None
    description: Optional[str] = None
    skill_tags: Tuple[str, ...] = ()
    url: Optional[str] = None
    published_at: Optional[datetime] = None
    first_seen_at: Optional[datetime] = None
    last_updated_at: Optional[datetime] = None
    status: JobStatus = JobStatus.ACTIVE

    def __post_init__(self):
        """Validate the identifier and freeze skill tags."""
        if not self.job_id or not self.job_id.strip():
            raise ValueError("job_id is required and cannot be empty")
        object.__setattr__(self, "skill_tags", tuple(self.skill_tags))
