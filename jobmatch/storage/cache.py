"""
Content-addressed cache for parse results.

Entries are keyed by a hash of the normalized source text plus the
schema and model versions that produced them, so a change to any of
these yields a new key and stale results are never served.
"""

import hashlib
import json
import logging
import re
from dataclasses import asdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from ..core.errors import StorageError
from ..llm.models import LLMResponse
from .db import Storage
from .models import CacheEntry, CacheStats, utc_now

logger = logging.getLogger(__name__)

_TRAILING_SPACE = re.compile(r"[ \t]+\n")
_BLANK_RUNS = re.compile(r"\n{3,}")


def normalize_text(text: str) -> str:
    """Normalize text so that cosmetic differences hash identically.

    Unifies line endings, drops trailing whitespace on each line,
    collapses runs of blank lines and strips the ends.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _TRAILING_SPACE.sub("\n", text + "\n")
    text = _BLANK_RUNS.sub("\n\n", text)
    return text.strip()


def compute_cache_key(text: str, schema_version: str, model_version: str) -> str:
    """Derive the cache key for a piece of source text.

    Args:
        text: Raw source text (resume or job description)
        schema_version: Version tag of the target schema / prompt
        model_version: Model identifier that produces the result

    Returns:
        Hex SHA-256 digest
    """
    digest = hashlib.sha256()
    for part in (schema_version, model_version, normalize_text(text)):
        digest.update(part.encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()


def response_metadata(response: Optional[LLMResponse]) -> Dict[str, Any]:
    """Flatten an LLMResponse into the metadata stored with an entry."""
    if response is None:
        return {}
    return {
        "provider": response.provider,
        "model": response.model,
        "finish_reason": response.finish_reason,
        "latency_ms": response.latency_ms,
        **asdict(response.usage),
    }


def _timestamp(moment: datetime) -> str:
    return moment.isoformat(timespec="microseconds")


class ParseCache:
    """TTL-bounded, content-addressed store of parse results.

    Expiry is lazy: an entry older than the TTL reads as absent but stays
    on disk until ``cleanup`` runs.
    """

    def __init__(
        self,
        storage: Storage,
        ttl: timedelta,
        enabled: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the cache.

        Args:
            storage: Storage handle
            ttl: Maximum age of a servable entry
            enabled: When False every get misses and puts are ignored
            clock: Source of the current time (naive UTC)

        Raises:
            ValueError: If ttl is not positive
        """
        if ttl <= timedelta(0):
            raise ValueError("ttl must be > 0")
        self.storage = storage
        self.ttl = ttl
        self.enabled = enabled
        self._clock = clock

    def _cutoff(self) -> str:
        return _timestamp(self._clock() - self.ttl)

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for a key, or None if absent or expired.

        Raises:
            StorageError: If the store cannot be read or holds a corrupt entry
        """
        if not self.enabled:
            return None

        with self.storage.connection() as conn:
            row = conn.execute(
                "SELECT cache_key, value_json, response_json, created_at "
                "FROM parse_cache WHERE cache_key = ?",
                (key,),
            ).fetchone()

        if row is None:
            return None

        try:
            created_at = datetime.fromisoformat(row["created_at"])
            value = json.loads(row["value_json"])
            response = json.loads(row["response_json"]) if row["response_json"] else {}
        except (TypeError, ValueError) as e:
            raise StorageError(f"Corrupt cache entry {key[:8]}: {e}", e)

        if self._clock() - created_at > self.ttl:
            logger.debug("Cache expired: %s", key[:8])
            return None

        logger.debug("Cache hit: %s", key[:8])
        return CacheEntry(key=key, value=value, created_at=created_at, response=response)

    def put(self, key: str, value: Any, response: Optional[LLMResponse] = None) -> Optional[CacheEntry]:
        """Store a value, overwriting any previous entry for the key.

        Args:
            key: Cache key (see compute_cache_key)
            value: JSON-serialisable parse result
            response: LLM response that produced the value

        Returns:
            The stored entry, or None when the cache is disabled

        Raises:
            StorageError: If the value can't be stored as plain JSON and read back
                unchanged, or can't be written
        """
        if not self.enabled:
            return None

        metadata = response_metadata(response)
        try:
            value_json = json.dumps(value, ensure_ascii=False, sort_keys=True)
            response_json = json.dumps(metadata, ensure_ascii=False, sort_keys=True)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Cache value for {key[:8]} is not JSON serialisable: {e}", e)
        # non-string keys and tuples would come back changed
        if json.loads(value_json) != value:
            raise StorageError(f"Cache value for {key[:8]} does not survive a JSON round trip")

        created_at = self._clock()
        with self.storage.connection() as conn:
            conn.execute(
                """
                INSERT INTO parse_cache (cache_key, value_json, response_json, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (cache_key) DO UPDATE SET
                    value_json = excluded.value_json,
                    response_json = excluded.response_json,
                    created_at = excluded.created_at
                """,
                (key, value_json, response_json, _timestamp(created_at)),
            )
        logger.debug("Saved to cache: %s", key[:8])
        return CacheEntry(key=key, value=value, created_at=created_at, response=metadata)

    def stats(self) -> CacheStats:
        """Entry count, stored size and number of expired entries. Read-only."""
        with self.storage.connection() as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*),
                    COALESCE(SUM(LENGTH(CAST(value_json AS BLOB))
                                 + LENGTH(CAST(COALESCE(response_json, '') AS BLOB))), 0),
                    COALESCE(SUM(CASE WHEN created_at < ? THEN 1 ELSE 0 END), 0)
                FROM parse_cache
                """,
                (self._cutoff(),),
            ).fetchone()

        return CacheStats(
            entry_count=row[0],
            total_size_bytes=row[1],
            expired_count=row[2],
            enabled=self.enabled,
            ttl_days=self.ttl.total_seconds() / 86400,
        )

    def cleanup(self) -> int:
        """Remove expired entries.

        The removal set is snapshotted first; each delete is conditional
        on the entry still carrying the snapshotted timestamp, so an entry
        rewritten after the scan survives.

        Returns:
            Number of entries removed
        """
        with self.storage.connection() as conn:
            expired = conn.execute(
                "SELECT cache_key, created_at FROM parse_cache WHERE created_at < ?",
                (self._cutoff(),),
            ).fetchall()

        removed = 0
        with self.storage.connection() as conn:
            for row in expired:
                cursor = conn.execute(
                    "DELETE FROM parse_cache WHERE cache_key = ? AND created_at = ?",
                    (row["cache_key"], row["created_at"]),
                )
                removed += cursor.rowcount

        logger.info("Removed %d expired cache entries", removed)
        return removed

    def clear(self) -> int:
        """Remove every entry. Returns the number removed."""
        with self.storage.connection() as conn:
            removed = conn.execute("DELETE FROM parse_cache").rowcount
        logger.info("Cleared %d cache entries", removed)
        return removed
