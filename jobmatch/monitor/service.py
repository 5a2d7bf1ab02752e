"""
Job monitoring service.

Runs one crawl cycle at a time: crawl, split known from new postings
through the job store, enrich and analyse only the new ones.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from ..config.loader import MonitorConfig
from ..core.errors import LLMError
from ..llm.parser import StructuredParser
from ..storage.job_store import JobStore
from ..storage.models import JobRecord, utc_now
from .crawler import JobCrawler

logger = logging.getLogger(__name__)

JD_SKILLS_SCHEMA_VERSION = "jd-skills-v1"
JD_SKILLS_PROMPT = (
    "Extract the technical skills required by the job description. "
    'Reply with a JSON object of the form {"skills": ["skill", ...]}.'
)


@dataclass(frozen=True)
class MonitorStats:
    """Summary of the stored postings."""
    total_jobs: int
    this_week_jobs: int
    search_keywords: str
    city: str


@dataclass(frozen=True)
class CrawlReport:
    """Counters from one crawl cycle."""
    crawled: int
    already_known: int
    filtered_by_date: int
    new_jobs: int


class MonitorService:
    """Coordinates crawler, job store and optional skill analysis."""

    def __init__(
        self,
        crawler: JobCrawler,
        store: JobStore,
        config: MonitorConfig,
        parser: Optional[StructuredParser] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the monitor.

        Args:
            crawler: Job board crawler
            store: Dedup store for postings
            config: Search and retention settings
            parser: Cache-backed parser used to tag new postings with skills
            clock: Source of the current time (naive UTC)
        """
        self.crawler = crawler
        self.store = store
        self.config = config
        self.parser = parser
        self._clock = clock
        self.last_report: Optional[CrawlReport] = None
        logger.info(
            "MonitorService initialized: keywords=%s, city=%s, only_today=%s",
            config.search_keywords, config.city, config.only_today,
        )

    def crawl_and_detect_new(self) -> List[JobRecord]:
        """Crawl the board and store postings not seen before.

        Known postings only get their ``last_updated_at`` refreshed; they
        are neither enriched nor analysed again.

        Returns:
            Newly stored postings, in crawl order

        Raises:
            StorageError: If the job store can't be read or written
        """
        now = self._clock()
        crawled = self.crawler.crawl_jobs(
            self.config.search_keywords, self.config.city, self.config.page_limit
        )
        logger.info("Crawled %d jobs", len(crawled))

        new_jobs: List[JobRecord] = []
        already_known = 0
        filtered_by_date = 0

        for job in crawled:
            if self.store.exists(job.job_id):
                already_known += 1
                self.store.touch(job.job_id, now)
                continue

            job = self.crawler.enrich_job_details(job)

            if self.config.only_today and job.published_at is not None:
                if job.published_at.date() != now.date():
                    filtered_by_date += 1
                    logger.info("Filtered by date: %s (published: %s)",
                                job.title, job.published_at.date())
                    continue

            job = replace(self._analyze(job), first_seen_at=now, last_updated_at=now)
            if self.store.upsert(job, now):
                new_jobs.append(job)
                logger.info("New job saved: %s @ %s (%s)", job.title, job.company, job.salary)

        self.last_report = CrawlReport(
            crawled=len(crawled),
            already_known=already_known,
            filtered_by_date=filtered_by_date,
            new_jobs=len(new_jobs),
        )
        logger.info(
            "Processing stats: %d crawled, %d already exist, %d filtered by date, %d new jobs saved",
            len(crawled), already_known, filtered_by_date, len(new_jobs),
        )
        return new_jobs

    def _analyze(self, job: JobRecord) -> JobRecord:
        if self.parser is None or not job.description:
            return job
        try:
            result = self.parser.parse(job.description)
        except LLMError as e:
            logger.warning("Skill analysis failed for %s: %s", job.job_id, e)
            return job

        skills = result.data.get("skills") or []
        if not isinstance(skills, list):
            return job
        return replace(job, skill_tags=tuple(str(skill) for skill in skills))

    def get_all_jobs(self) -> List[JobRecord]:
        return self.store.list_all()

    def get_recent_jobs(self, days: int) -> List[JobRecord]:
        """Postings first seen in the last ``days`` days."""
        return self.store.list_since(self._clock() - timedelta(days=days))

    def get_this_week_jobs(self) -> List[JobRecord]:
        """Postings first seen since Monday 00:00."""
        now = self._clock()
        monday = (now - timedelta(days=now.weekday())).replace(
            hour=0, minute=0, second=0, microsecond=0
        )
        return self.store.list_since(monday)

    def cleanup_old_jobs(self) -> int:
        """Delete postings older than the retention period."""
        cutoff = self._clock() - timedelta(days=self.config.retention_days)
        deleted = self.store.delete_older_than(cutoff)
        logger.info("Cleaned up %d old jobs", deleted)
        return deleted

    def get_stats(self) -> MonitorStats:
        return MonitorStats(
            total_jobs=len(self.get_all_jobs()),
            this_week_jobs=len(self.get_this_week_jobs()),
            search_keywords=self.config.search_keywords,
            city=self.config.city,
        )
