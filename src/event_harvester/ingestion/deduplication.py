"""
Module for event deduplication.

Identity is a content key: the lowercase-trimmed detail URL when present,
otherwise ``lowercase(title)::start_date``. Within a run no two forwarded
events share a key; across runs an optional conditional write against the
event store decides.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from event_harvester.schemas.event import NormalizedEvent
from event_harvester.storage.event_store import PutOutcome

logger = logging.getLogger(__name__)

DEDUP_KEY_PREFIX = "DEDUP#"


def compute_dedup_key(event: Any) -> str:
    """
    Stable identity key for an event.

    Prefers the lowercase-trimmed detail URL; falls back to
    ``lowercase(title) + "::" + (start_date or "unknown")``.
    """
    url = (getattr(event, "detail_url", None) or "").strip().lower()
    if url:
        return url
    return title_date_key(event)


def title_date_key(event: Any) -> str:
    title = " ".join((getattr(event, "title", None) or "").split()).lower()
    start = getattr(event, "start_date", None) or "unknown"
    return f"{title}::{start}"


class EventDeduplicator(ABC):
    """
    Abstract base for deduplication strategies
    """

    @abstractmethod
    def deduplicate(self, events: List[NormalizedEvent]) -> List[NormalizedEvent]:
        """
        Deduplicate events and return unique set
        """
        pass


class KeyMatchDeduplicator(EventDeduplicator):
    """
    In-run pass over dedup keys.

    Two events are the same when their dedup keys match, or when their
    title::date keys match and at most one of them has a detail URL. When a
    later duplicate carries a URL and the kept event does not, the later one
    replaces it.
    """

    def __init__(self):
        self.duplicates = 0

    def deduplicate(self, events: List[NormalizedEvent]) -> List[NormalizedEvent]:
        self.duplicates = 0
        unique: List[NormalizedEvent] = []
        by_key: Dict[str, int] = {}
        by_title_date: Dict[str, int] = {}

        for event in events:
            key = event.dedup_key or compute_dedup_key(event)
            td_key = title_date_key(event)

            if key in by_key:
                self.duplicates += 1
                logger.debug(f"Duplicate in run: {key}")
                continue

            idx = by_title_date.get(td_key)
            # same title and date on two different pages are distinct events
            if idx is not None and not (unique[idx].detail_url and event.detail_url):
                kept = unique[idx]
                self.duplicates += 1
                if event.detail_url and not kept.detail_url:
                    logger.debug(f"Replacing {kept.dedup_key} with URL-bearing {key}")
                    del by_key[kept.dedup_key or compute_dedup_key(kept)]
                    unique[idx] = event
                    by_key[key] = idx
                else:
                    logger.debug(f"Duplicate in run: {td_key}")
                continue

            by_key[key] = len(unique)
            by_title_date.setdefault(td_key, len(unique))
            unique.append(event)

        return unique


class DedupRegistry:
    """
    Run-scoped record of seen keys, optionally backed by the event store.

    Registry membership is checked first so a key is written to the store at
    most once per run. A conditional-write rejection means "already exists" and
    is reported as a duplicate, never as an error.

    Markers written by this registry are only provisional until the events
    they stand for are delivered; release() removes the rest so a later run
    can pick those events up again.
    """

    def __init__(self, store=None, cross_run: bool = False, run_id: Optional[str] = None):
        self.store = store
        self.cross_run = cross_run and store is not None
        self.run_id = run_id
        self._seen: Set[str] = set()
        self._written: Set[str] = set()
        self.store_rejections = 0

    def __contains__(self, key: str) -> bool:
        return key in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def is_duplicate(self, key: str, record: Optional[Dict[str, Any]] = None) -> bool:
        """
        Check and mark a key.

        Returns:
            True when the key was already seen in this run or already exists
            in the store (cross-run mode).
        """
        if key in self._seen:
            return True
        self._seen.add(key)

        if not self.cross_run:
            return False

        marker = dict(record or {})
        marker.setdefault("dedupKey", key)
        if self.run_id:
            marker.setdefault("firstSeenRunId", self.run_id)
        outcome = self.store.conditional_put(f"{DEDUP_KEY_PREFIX}{key}", marker)
        if outcome == PutOutcome.ALREADY_EXISTS:
            self.store_rejections += 1
            return True
        self._written.add(key)
        return False

    def release(self, delivered: Iterable[str]) -> int:
        """
        Delete the markers this registry wrote for keys not in delivered.

        Returns:
            Number of markers removed.
        """
        if not self.cross_run:
            return 0
        undelivered = self._written - set(delivered)
        for key in undelivered:
            self.store.delete(f"{DEDUP_KEY_PREFIX}{key}")
        self._written.clear()
        return len(undelivered)


@dataclass
class DedupResult:
    unique: List[NormalizedEvent] = field(default_factory=list)
    duplicates: int = 0
    skipped_existing: int = 0

    @property
    def dropped(self) -> int:
        return self.duplicates + self.skipped_existing


class DeduplicationEngine:
    """
    Combine the in-run key pass with the registry check.

    Args:
        registry: Run-scoped registry; a fresh one is created when omitted.
    """

    def __init__(self, registry: Optional[DedupRegistry] = None):
        self.registry = registry if registry is not None else DedupRegistry()
        self.in_run = KeyMatchDeduplicator()

    def deduplicate(self, events: List[NormalizedEvent], log=None) -> DedupResult:
        log = log or logger
        candidates = self.in_run.deduplicate(events)
        result = DedupResult(duplicates=self.in_run.duplicates)

        for event in candidates:
            key = event.dedup_key or compute_dedup_key(event)
            was_seen = key in self.registry
            if self.registry.is_duplicate(key, _marker(event)):
                if was_seen:
                    result.duplicates += 1
                else:
                    result.skipped_existing += 1
                log.debug(
                    f"Skipped duplicate '{event.title}'",
                    extra={
                        "event": "record_rejected",
                        "payload": {
                            "reason": "duplicate" if was_seen else "already_exists",
                            "dedup_key": key,
                        },
                    },
                )
                continue
            result.unique.append(event)

        if result.dropped:
            log.info(
                f"Dedup kept {len(result.unique)} of {len(events)} events",
                extra={
                    "event": "dedup_summary",
                    "payload": {
                        "duplicates": result.duplicates,
                        "already_exists": result.skipped_existing,
                    },
                },
            )
        return result


def _marker(event: NormalizedEvent) -> Dict[str, Any]:
    return {
        "title": event.title,
        "startDate": event.start_date,
        "sourceName": event.source_name,
    }
