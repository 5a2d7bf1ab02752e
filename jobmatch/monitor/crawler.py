"""
Job board crawler contract.

The browser-driven crawler lives outside this package; the monitor only
depends on this protocol.
"""

from typing import List, Protocol, runtime_checkable

from ..storage.models import JobRecord


@runtime_checkable
class JobCrawler(Protocol):
    """Produces job postings from a job board."""

    def crawl_jobs(self, keywords: str, location: str, page_limit: int) -> List[JobRecord]:
        """Search the board and return the listed postings (summary fields only)."""
        ...

    def enrich_job_details(self, record: JobRecord) -> JobRecord:
        """Return the posting with its full description and publish time filled in."""
        ...
