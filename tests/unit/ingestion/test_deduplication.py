"""
Unit tests for the deduplication module.

Tests:
- compute_dedup_key / title_date_key
- KeyMatchDeduplicator (in-run pass)
- DedupRegistry (run-scoped and cross-run)
- DeduplicationEngine
"""

from types import SimpleNamespace

from event_harvester.ingestion.deduplication import (
    DEDUP_KEY_PREFIX,
    DedupRegistry,
    DeduplicationEngine,
    KeyMatchDeduplicator,
    compute_dedup_key,
    title_date_key,
)
from event_harvester.storage.event_store import InMemoryEventStore


class TestDedupKey:
    """Tests for key computation."""

    def test_url_preferred(self, create_event):
        event = create_event(detail_url="  HTTPS://Example.com/E/1 ")
        assert compute_dedup_key(event) == "https://example.com/e/1"

    def test_title_date_fallback(self, create_event):
        event = create_event(title="Jazz   Night")
        assert compute_dedup_key(event) == "jazz night::2024-06-15"
        assert title_date_key(event) == "jazz night::2024-06-15"

    def test_unknown_date(self):
        assert title_date_key(SimpleNamespace(title="X", start_date=None)) == "x::unknown"


class TestKeyMatchDeduplicator:
    """Tests for the in-run pass."""

    def test_no_duplicates(self, create_event):
        events = [create_event(title="A"), create_event(title="B")]
        dedup = KeyMatchDeduplicator()
        assert dedup.deduplicate(events) == events
        assert dedup.duplicates == 0

    def test_same_key_keeps_first(self, create_event):
        first = create_event(title="Jazz Night", description="first")
        second = create_event(title="jazz night", description="second")
        dedup = KeyMatchDeduplicator()

        result = dedup.deduplicate([first, second])

        assert result == [first]
        assert dedup.duplicates == 1

    def test_url_bearing_record_wins(self, create_event):
        """A later duplicate with a detail URL replaces a kept event without one."""
        plain = create_event(title="Jazz Night")
        linked = create_event(title="Jazz Night", detail_url="https://x/y")

        result = KeyMatchDeduplicator().deduplicate([plain, linked])

        assert len(result) == 1
        assert result[0].detail_url == "https://x/y"

    def test_url_first_is_kept(self, create_event):
        linked = create_event(title="Jazz Night", detail_url="https://x/y")
        plain = create_event(title="Jazz Night")
        assert KeyMatchDeduplicator().deduplicate([linked, plain]) == [linked]

    def test_different_urls_are_distinct(self, create_event):
        a = create_event(title="Open Mic", detail_url="https://x/1")
        b = create_event(title="Open Mic", detail_url="https://x/2")
        assert KeyMatchDeduplicator().deduplicate([a, b]) == [a, b]

    def test_same_url_case_insensitive(self, create_event):
        a = create_event(title="One", detail_url="https://x/Y")
        b = create_event(title="Two", detail_url="https://x/y")
        assert KeyMatchDeduplicator().deduplicate([a, b]) == [a]

    def test_empty(self):
        assert KeyMatchDeduplicator().deduplicate([]) == []


class TestDedupRegistry:
    """Tests for DedupRegistry."""

    def test_run_scoped(self):
        registry = DedupRegistry()
        assert not registry.is_duplicate("k")
        assert registry.is_duplicate("k")
        assert "k" in registry
        assert len(registry) == 1

    def test_store_ignored_without_cross_run(self):
        store = InMemoryEventStore()
        registry = DedupRegistry(store, cross_run=False)
        registry.is_duplicate("k")
        assert len(store) == 0

    def test_cross_run_writes_marker(self):
        store = InMemoryEventStore()
        registry = DedupRegistry(store, cross_run=True, run_id="crawl-1")

        assert not registry.is_duplicate("k", {"title": "A"})

        marker = store.get(f"{DEDUP_KEY_PREFIX}k")
        assert marker == {"title": "A", "dedupKey": "k", "firstSeenRunId": "crawl-1"}

    def test_existing_key_is_duplicate_not_error(self):
        store = InMemoryEventStore()
        store.put(f"{DEDUP_KEY_PREFIX}k", {"dedupKey": "k"})
        registry = DedupRegistry(store, cross_run=True)

        assert registry.is_duplicate("k")
        assert registry.store_rejections == 1

    def test_key_written_once_per_run(self):
        store = InMemoryEventStore()
        registry = DedupRegistry(store, cross_run=True)
        registry.is_duplicate("k")
        assert registry.is_duplicate("k")
        assert registry.store_rejections == 0

    def test_release_removes_undelivered_markers(self):
        store = InMemoryEventStore()
        store.put(f"{DEDUP_KEY_PREFIX}old", {"dedupKey": "old"})
        registry = DedupRegistry(store, cross_run=True)
        for key in ("old", "a", "b", "c"):
            registry.is_duplicate(key)

        assert registry.release(["a"]) == 2

        assert store.get(f"{DEDUP_KEY_PREFIX}a") is not None
        assert store.get(f"{DEDUP_KEY_PREFIX}b") is None
        assert store.get(f"{DEDUP_KEY_PREFIX}c") is None
        assert store.get(f"{DEDUP_KEY_PREFIX}old") is not None

    def test_release_is_noop_without_cross_run(self):
        store = InMemoryEventStore()
        store.put(f"{DEDUP_KEY_PREFIX}a", {})
        registry = DedupRegistry(store, cross_run=False)
        registry.is_duplicate("a")

        assert registry.release([]) == 0
        assert len(store) == 1


class TestDeduplicationEngine:
    """Tests for DeduplicationEngine."""

    def test_counts(self, create_event):
        store = InMemoryEventStore()
        store.put(f"{DEDUP_KEY_PREFIX}seen before::2024-06-15", {})
        engine = DeduplicationEngine(DedupRegistry(store, cross_run=True))
        events = [
            create_event(title="New"),
            create_event(title="New"),
            create_event(title="Seen Before"),
        ]

        result = engine.deduplicate(events)

        assert [e.title for e in result.unique] == ["New"]
        assert result.duplicates == 1
        assert result.skipped_existing == 1
        assert result.dropped == 2

    def test_empty_registry_is_kept(self, create_event):
        store = InMemoryEventStore()
        registry = DedupRegistry(store, cross_run=True)
        engine = DeduplicationEngine(registry)

        engine.deduplicate([create_event(title="A")])

        assert engine.registry is registry
        assert len(store.query(prefix=DEDUP_KEY_PREFIX)) == 1

    def test_registry_shared_across_calls(self, create_event):
        engine = DeduplicationEngine()
        engine.deduplicate([create_event(title="A")])
        result = engine.deduplicate([create_event(title="A")])
        assert result.unique == []
        assert result.duplicates == 1

    def test_uses_precomputed_key(self, create_event):
        event = create_event(title="A", dedup_key="custom")
        engine = DeduplicationEngine()
        engine.deduplicate([event])
        assert "custom" in engine.registry
