"""
Unit tests for the job monitoring service.

Uses a scripted in-memory crawler and a real job store on a temporary
database.
"""

import os
import shutil
import tempfile
from dataclasses import replace
from datetime import datetime, timedelta
from typing import List
from unittest.mock import Mock

from jobmatch.config.loader import MonitorConfig
from jobmatch.core.errors import ErrorKind, LLMError
from jobmatch.monitor.crawler import JobCrawler
from jobmatch.monitor.service import MonitorService
from jobmatch.storage.db import Storage
from jobmatch.storage.job_store import JobStore
from jobmatch.storage.models import JobRecord

# A Wednesday
NOW = datetime(2024, 3, 6, 14, 0, 0)


class ScriptedCrawler:
    """Returns a fixed listing and records which jobs were enriched."""

    def __init__(self, jobs: List[JobRecord]):
        self.jobs = jobs
        self.enriched: List[str] = []

    def crawl_jobs(self, keywords, location, page_limit):
        return list(self.jobs)

    def enrich_job_details(self, record):
        self.enriched.append(record.job_id)
        return replace(record, description=f"Description of {record.title}")


def _job(job_id, published_at=NOW, title=None) -> JobRecord:
    return JobRecord(job_id=job_id, title=title or f"Job {job_id}", company="Acme",
                     published_at=published_at)


class TestMonitorService:
    """Test crawl dedup, date filtering and queries."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.now = NOW
        self.store = JobStore(Storage(os.path.join(self.temp_dir, "test.db")), clock=lambda: self.now)

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _service(self, crawler, parser=None, **config):
        return MonitorService(crawler, self.store, MonitorConfig(**config),
                              parser=parser, clock=lambda: self.now)

    def test_crawler_protocol(self):
        assert isinstance(ScriptedCrawler([]), JobCrawler)

    def test_only_unseen_jobs_are_new(self):
        earlier = NOW - timedelta(hours=3)
        self.store.upsert(_job("A"), now=earlier)
        crawler = ScriptedCrawler([_job("A"), _job("B")])

        new_jobs = self._service(crawler).crawl_and_detect_new()

        assert [job.job_id for job in new_jobs] == ["B"]
        assert crawler.enriched == ["B"]
        assert self.store.all_ids() == {"A", "B"}
        stored_a = self.store.get("A")
        assert stored_a.first_seen_at == earlier
        assert stored_a.last_updated_at == NOW
        stored_b = self.store.get("B")
        assert stored_b.first_seen_at == NOW
        assert stored_b.description == "Description of Job B"

    def test_repeat_crawl_finds_nothing_new(self):
        service = self._service(ScriptedCrawler([_job("A"), _job("B")]))

        assert len(service.crawl_and_detect_new()) == 2
        assert service.crawl_and_detect_new() == []
        assert service.last_report.already_known == 2

    def test_only_today_filters_older_postings(self):
        crawler = ScriptedCrawler([
            _job("today"),
            _job("yesterday", published_at=NOW - timedelta(days=1)),
            _job("undated", published_at=None),
        ])
        service = self._service(crawler, only_today=True)

        new_jobs = service.crawl_and_detect_new()

        assert [job.job_id for job in new_jobs] == ["today", "undated"]
        assert not self.store.exists("yesterday")
        assert service.last_report.filtered_by_date == 1

    def test_date_filter_disabled(self):
        crawler = ScriptedCrawler([_job("yesterday", published_at=NOW - timedelta(days=1))])
        assert len(self._service(crawler, only_today=False).crawl_and_detect_new()) == 1

    def test_new_jobs_are_tagged_with_skills(self):
        parser = Mock()
        parser.parse.return_value.data = {"skills": ["python", "rag"]}

        new_jobs = self._service(ScriptedCrawler([_job("A")]), parser=parser).crawl_and_detect_new()

        parser.parse.assert_called_once_with("Description of Job A")
        assert new_jobs[0].skill_tags == ("python", "rag")
        assert self.store.get("A").skill_tags == ("python", "rag")

    def test_analysis_failure_still_stores_job(self):
        parser = Mock()
        parser.parse.side_effect = LLMError(ErrorKind.CONNECTION_FAILED, "Ollama down")

        new_jobs = self._service(ScriptedCrawler([_job("A")]), parser=parser).crawl_and_detect_new()

        assert [job.job_id for job in new_jobs] == ["A"]
        assert self.store.get("A").skill_tags == ()

    def test_recent_and_this_week_queries(self):
        self.store.upsert(_job("monday"), now=datetime(2024, 3, 4, 8, 0))
        self.store.upsert(_job("last-sunday"), now=datetime(2024, 3, 3, 23, 0))
        self.store.upsert(_job("old"), now=NOW - timedelta(days=20))
        service = self._service(ScriptedCrawler([]))

        assert {job.job_id for job in service.get_this_week_jobs()} == {"monday"}
        assert {job.job_id for job in service.get_recent_jobs(7)} == {"monday", "last-sunday"}
        assert len(service.get_all_jobs()) == 3

    def test_cleanup_uses_retention(self):
        self.store.upsert(_job("old"), now=NOW - timedelta(days=31))
        self.store.upsert(_job("fresh"), now=NOW - timedelta(days=29))

        deleted = self._service(ScriptedCrawler([]), retention_days=30).cleanup_old_jobs()

        assert deleted == 1
        assert self.store.all_ids() == {"fresh"}

    def test_stats(self):
        self.store.upsert(_job("A"), now=NOW)
        service = self._service(ScriptedCrawler([]), search_keywords="LLM", city="上海")

        stats = service.get_stats()

        assert stats.total_jobs == 1
        assert stats.this_week_jobs == 1
        assert stats.search_keywords == "LLM"
        assert stats.city == "上海"
