"""
Unit tests for the content-addressed parse cache.

Tests key derivation, overwrite semantics, lazy TTL expiry, stats and
cleanup.
"""

import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from jobmatch.core.errors import StorageError
from jobmatch.core.token_counter import TokenUsage
from jobmatch.llm.models import LLMResponse
from jobmatch.storage.cache import ParseCache, compute_cache_key, normalize_text
from jobmatch.storage.db import Storage

TTL = timedelta(days=7)
START = datetime(2024, 3, 4, 9, 30, 0)


class FakeClock:
    """Settable clock for TTL tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class TestCacheKey:
    """Test key derivation."""

    def test_key_is_deterministic(self):
        assert compute_cache_key("Python developer", "v1", "qwen") == \
            compute_cache_key("Python developer", "v1", "qwen")

    def test_cosmetic_whitespace_does_not_change_key(self):
        a = compute_cache_key("Senior Engineer\r\n\r\n\r\nPython  \n", "v1", "qwen")
        b = compute_cache_key("  Senior Engineer\n\nPython", "v1", "qwen")
        assert a == b

    def test_schema_or_model_version_changes_key(self):
        base = compute_cache_key("text", "v1", "qwen")
        assert compute_cache_key("text", "v2", "qwen") != base
        assert compute_cache_key("text", "v1", "gpt-4o-mini") != base
        assert compute_cache_key("other text", "v1", "qwen") != base

    def test_version_parts_are_not_ambiguous(self):
        assert compute_cache_key("c", "ab", "") != compute_cache_key("c", "a", "b")

    def test_normalize_text(self):
        assert normalize_text("a \t\r\nb\n\n\n\nc\n") == "a\nb\n\nc"


class TestParseCache:
    """Test cache get/put/stats/cleanup against a temporary database."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        self.clock = FakeClock(START)
        self.cache = ParseCache(Storage(self.db_path), ttl=TTL, clock=self.clock)

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_get_missing_key(self):
        assert self.cache.get("missing") is None

    def test_put_then_get(self):
        response = LLMResponse(
            content="{}",
            model="qwen2.5:14b",
            provider="ollama",
            usage=TokenUsage(prompt_tokens=120, completion_tokens=30),
            latency_ms=850,
        )
        self.cache.put("k1", {"skills": ["python", "sql"]}, response)

        entry = self.cache.get("k1")

        assert entry is not None
        assert entry.value == {"skills": ["python", "sql"]}
        assert entry.created_at == START
        assert entry.response["provider"] == "ollama"
        assert entry.response["model"] == "qwen2.5:14b"
        assert entry.response["prompt_tokens"] == 120
        assert entry.response["latency_ms"] == 850

    def test_overwrite_replaces_value(self):
        self.cache.put("k1", {"v": 1})
        self.clock.advance(timedelta(minutes=1))
        self.cache.put("k1", {"v": 2})

        entry = self.cache.get("k1")

        assert entry.value == {"v": 2}
        assert entry.created_at == START + timedelta(minutes=1)
        assert self.cache.stats().entry_count == 1

    def test_entry_live_just_before_ttl(self):
        self.cache.put("k1", {"v": 1})
        self.clock.advance(TTL - timedelta(seconds=1))
        assert self.cache.get("k1") is not None

    def test_entry_absent_just_after_ttl(self):
        self.cache.put("k1", {"v": 1})
        self.clock.advance(TTL + timedelta(seconds=1))
        assert self.cache.get("k1") is None
        # lazy expiry keeps the row until cleanup
        assert self.cache.stats().entry_count == 1

    def test_stats(self):
        self.cache.put("old", {"v": "x" * 100})
        self.clock.advance(TTL + timedelta(hours=1))
        self.cache.put("fresh", {"v": 1})

        stats = self.cache.stats()

        assert stats.entry_count == 2
        assert stats.expired_count == 1
        assert stats.total_size_bytes > 100
        assert stats.ttl_days == 7
        assert stats.total_size_mb == "0.00"

    def test_stats_does_not_mutate(self):
        self.cache.put("old", {"v": 1})
        self.clock.advance(TTL * 2)

        self.cache.stats()
        self.cache.stats()

        assert self.cache.stats().entry_count == 1

    def test_cleanup_removes_only_expired(self):
        self.cache.put("old", {"v": 1})
        self.clock.advance(TTL + timedelta(hours=1))
        self.cache.put("fresh", {"v": 2})

        removed = self.cache.cleanup()

        assert removed == 1
        assert self.cache.stats().entry_count == 1
        assert self.cache.get("fresh").value == {"v": 2}

    def test_cleanup_spares_entry_rewritten_after_scan(self):
        self.cache.put("k1", {"v": 1})
        self.clock.advance(TTL + timedelta(hours=1))

        original_connection = self.cache.storage.connection
        calls = []

        def rewrite_between_scan_and_delete():
            calls.append(1)
            if len(calls) == 2:
                self.cache.put("k1", {"v": "rewritten"})
            return original_connection()

        with patch.object(self.cache.storage, "connection", side_effect=rewrite_between_scan_and_delete):
            removed = self.cache.cleanup()

        assert removed == 0
        assert self.cache.get("k1").value == {"v": "rewritten"}

    def test_clear_removes_everything(self):
        self.cache.put("a", {"v": 1})
        self.cache.put("b", {"v": 2})

        assert self.cache.clear() == 2
        assert self.cache.stats().entry_count == 0

    def test_disabled_cache_misses_and_ignores_puts(self):
        cache = ParseCache(Storage(self.db_path), ttl=TTL, enabled=False, clock=self.clock)

        assert cache.put("k1", {"v": 1}) is None
        assert cache.get("k1") is None
        assert self.cache.get("k1") is None

    def test_cache_is_shared_across_handles(self):
        self.cache.put("k1", {"v": 1})
        other = ParseCache(Storage(self.db_path), ttl=TTL, clock=self.clock)
        assert other.get("k1").value == {"v": 1}

    def test_unserialisable_value_is_storage_error(self):
        with pytest.raises(StorageError, match="not JSON serialisable"):
            self.cache.put("k1", {"v": object()})

    @pytest.mark.parametrize("value", [
        {1: "a"},
        {"tags": ("python", "sql")},
        ("a", "b"),
    ])
    def test_value_that_would_change_on_reload_is_rejected(self, value):
        with pytest.raises(StorageError, match="round trip"):
            self.cache.put("k1", value)

        assert self.cache.get("k1") is None

    @pytest.mark.parametrize("value", [
        {"skills": ["python"], "years": 3, "remote": True, "score": 0.5, "note": None},
        ["a", 1],
        "plain",
    ])
    def test_plain_json_values_come_back_unchanged(self, value):
        self.cache.put("k1", value)
        assert self.cache.get("k1").value == value

    def test_corrupt_timestamp_is_storage_error(self):
        self.cache.put("k1", {"v": 1})
        with self.cache.storage.connection() as conn:
            conn.execute("UPDATE parse_cache SET created_at = 'yesterday-ish'")

        with pytest.raises(StorageError, match="Corrupt cache entry"):
            self.cache.get("k1")

    def test_corrupt_value_is_storage_error(self):
        self.cache.put("k1", {"v": 1})
        with self.cache.storage.connection() as conn:
            conn.execute("UPDATE parse_cache SET value_json = '{broken'")

        with pytest.raises(StorageError, match="Corrupt cache entry"):
            self.cache.get("k1")

    def test_default_clock_is_utc(self):
        cache = ParseCache(Storage(self.db_path), ttl=TTL)
        before = datetime.now(timezone.utc).replace(tzinfo=None)

        entry = cache.put("k1", {"v": 1})

        after = datetime.now(timezone.utc).replace(tzinfo=None)
        assert entry.created_at.tzinfo is None
        assert before <= entry.created_at <= after

    def test_invalid_ttl(self):
        with pytest.raises(ValueError, match="ttl"):
            ParseCache(Storage(self.db_path), ttl=timedelta(0))


class TestStorageFailures:
    """Storage failures surface as StorageError, never swallowed."""

    def test_unwritable_database_path(self):
        temp_dir = tempfile.mkdtemp()
        try:
            blocker = os.path.join(temp_dir, "file")
            with open(blocker, "w", encoding="utf-8") as f:
                f.write("not a directory")
            with pytest.raises(StorageError):
                Storage(os.path.join(blocker, "nested", "test.db"))
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

    def test_corrupt_table_read(self):
        temp_dir = tempfile.mkdtemp()
        try:
            storage = Storage(os.path.join(temp_dir, "test.db"))
            cache = ParseCache(storage, ttl=TTL)
            with storage.connection() as conn:
                conn.execute("DROP TABLE parse_cache")

            with pytest.raises(StorageError):
                cache.get("k1")
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)
