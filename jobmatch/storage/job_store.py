"""
Dedup store for crawled job postings.

Keeps at most one record per external job id, so re-crawling a posting
refreshes it instead of creating a duplicate.
"""

import json
import logging
import sqlite3
from datetime import datetime
from typing import Callable, List, Optional, Set

from .db import Storage
from .models import JobRecord, JobStatus, utc_now

logger = logging.getLogger(__name__)

_COLUMNS = (
    "job_id", "title", "company", "company_size", "industry", "city", "district",
    "salary", "experience", "education", "description", "skill_tags", "url",
    "published_at", "first_seen_at", "last_updated_at", "status",
)
# Columns refreshed when an existing posting is observed again
_MUTABLE_COLUMNS = tuple(c for c in _COLUMNS if c not in ("job_id", "first_seen_at"))


def _format_time(moment: Optional[datetime]) -> Optional[str]:
    return moment.isoformat(timespec="microseconds") if moment else None


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _row_to_record(row: sqlite3.Row) -> JobRecord:
    return JobRecord(
        job_id=row["job_id"],
        title=row["title"] or "",
        company=row["company"] or "",
        company_size=row["company_size"],
        industry=row["industry"],
        city=row["city"],
        district=row["district"],
        salary=row["salary"],
        experience=row["experience"],
        education=row["education"],
        description=row["description"],
        skill_tags=tuple(json.loads(row["skill_tags"] or "[]")),
        url=row["url"],
        published_at=_parse_time(row["published_at"]),
        first_seen_at=_parse_time(row["first_seen_at"]),
        last_updated_at=_parse_time(row["last_updated_at"]),
        status=JobStatus(row["status"]),
    )


class JobStore:
    """Repository of job postings keyed by their board identifier."""

    def __init__(self, storage: Storage, clock: Callable[[], datetime] = utc_now):
        """Initialize the store.

        Args:
            storage: Storage handle
            clock: Source of the current time for first-seen/last-updated stamps (naive UTC)
        """
        self.storage = storage
        self._clock = clock

    def exists(self, job_id: str) -> bool:
        with self.storage.connection() as conn:
            row = conn.execute("SELECT 1 FROM job_record WHERE job_id = ?", (job_id,)).fetchone()
        return row is not None

    def get(self, job_id: str) -> Optional[JobRecord]:
        with self.storage.connection() as conn:
            row = conn.execute("SELECT * FROM job_record WHERE job_id = ?", (job_id,)).fetchone()
        return _row_to_record(row) if row else None

    def upsert(self, record: JobRecord, now: Optional[datetime] = None) -> bool:
        """Insert a new posting or refresh an existing one.

        Missing ``first_seen_at`` / ``last_updated_at`` on the record default
        to ``now``. On update every mutable field, ``last_updated_at``
        included, is overwritten while the stored ``first_seen_at`` is
        preserved. Both paths run in one write transaction.

        Args:
            record: Posting to store
            now: Observation time (defaults to the store clock)

        Returns:
            True if a new record was created, False if an existing one was updated

        Raises:
            StorageError: If the write fails
        """
        now = now or self._clock()
        values = {
            "job_id": record.job_id,
            "title": record.title,
            "company": record.company,
            "company_size": record.company_size,
            "industry": record.industry,
            "city": record.city,
            "district": record.district,
            "salary": record.salary,
            "experience": record.experience,
            "education": record.education,
            "description": record.description,
            "skill_tags": json.dumps(list(record.skill_tags), ensure_ascii=False),
            "url": record.url,
            "published_at": _format_time(record.published_at),
            "first_seen_at": _format_time(record.first_seen_at or now),
            "last_updated_at": _format_time(record.last_updated_at or now),
            "status": record.status.value,
        }

        with self.storage.connection() as conn:
            cursor = conn.execute(
                f"INSERT OR IGNORE INTO job_record ({', '.join(_COLUMNS)}) "
                f"VALUES ({', '.join('?' for _ in _COLUMNS)})",
                [values[c] for c in _COLUMNS],
            )
            if cursor.rowcount == 1:
                logger.debug("Saved new job: %s", record.job_id)
                return True

            conn.execute(
                f"UPDATE job_record SET {', '.join(f'{c} = ?' for c in _MUTABLE_COLUMNS)} "
                "WHERE job_id = ?",
                [values[c] for c in _MUTABLE_COLUMNS] + [record.job_id],
            )
        logger.debug("Updated existing job: %s", record.job_id)
        return False

    def touch(self, job_id: str, now: Optional[datetime] = None) -> bool:
        """Refresh ``last_updated_at`` only. Returns False if the job is unknown."""
        with self.storage.connection() as conn:
            cursor = conn.execute(
                "UPDATE job_record SET last_updated_at = ? WHERE job_id = ?",
                (_format_time(now or self._clock()), job_id),
            )
        return cursor.rowcount == 1

    def list_all(self) -> List[JobRecord]:
        """All postings, most recently first seen first."""
        with self.storage.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM job_record ORDER BY first_seen_at DESC, job_id"
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def list_since(self, since: datetime) -> List[JobRecord]:
        """Postings first seen at or after ``since``."""
        with self.storage.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM job_record WHERE first_seen_at >= ? "
                "ORDER BY first_seen_at DESC, job_id",
                (_format_time(since),),
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def all_ids(self) -> Set[str]:
        with self.storage.connection() as conn:
            rows = conn.execute("SELECT job_id FROM job_record").fetchall()
        return {row["job_id"] for row in rows}

    def delete_older_than(self, cutoff: datetime) -> int:
        """Retention cleanup: remove postings first seen before ``cutoff``."""
        with self.storage.connection() as conn:
            cursor = conn.execute(
                "DELETE FROM job_record WHERE first_seen_at < ?",
                (_format_time(cutoff),),
            )
        logger.info("Removed %d jobs first seen before %s", cursor.rowcount, cutoff.date())
        return cursor.rowcount
