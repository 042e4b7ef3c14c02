"""
Job Tracker.

Tracks the lifecycle of crawl runs:

    pending -> running -> completed | failed

Jobs are kept in memory for history queries and, when an event store is
configured, every transition is also written as a snapshot under
``CRAWL_JOB#<id>``.
"""

import logging
import secrets
import threading
from collections import OrderedDict
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

from event_harvester.runtime.errors import ErrorKind
from event_harvester.schemas.job import MANUAL_TRIGGER, CrawlJob, JobStatus, SourceProgress
from event_harvester.storage.event_store import EventStore

logger = logging.getLogger(__name__)

JOB_KEY_PREFIX = "CRAWL_JOB#"
DEFAULT_HISTORY_LIMIT = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobTracker:
    """
    In-process job registry with optional persistence.

    Args:
        store: Event store used for job snapshots, or None
        history_limit: Number of finished jobs kept in memory
        clock: Returns the current time; injectable for tests
    """

    def __init__(
        self,
        store: Optional[EventStore] = None,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.history_limit = history_limit
        self.clock = clock
        self._jobs: "OrderedDict[str, CrawlJob]" = OrderedDict()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_job(self, source_names: Sequence[str], trigger: str = MANUAL_TRIGGER) -> CrawlJob:
        """Create a job and mark it running."""
        now = self.clock()
        job = CrawlJob(
            id=f"crawl-{trigger}-{now.strftime('%Y%m%dT%H%M%S')}-{secrets.token_hex(2)}",
            source_names=list(source_names),
            trigger=trigger,
            status=JobStatus.running,
            started_at=now,
        )
        with self._lock:
            self._jobs[job.id] = job
            self._trim()
        self._persist(job)
        logger.info(f"Created job {job.id} for {len(job.source_names)} source(s)")
        return job

    def record_progress(self, job_id: str, source_name: str, events_found: int) -> CrawlJob:
        """Record how many events one source produced."""
        with self._lock:
            job = self._require(job_id)
            progress = job.source_results.setdefault(source_name, SourceProgress())
            progress.events_found += events_found
            progress.finished_at = self.clock()
            job.events_found += events_found
        self._persist(job)
        return job

    def record_error(self, job_id: str, source_name: str, error: str) -> CrawlJob:
        """Record a per-source error. The job keeps running."""
        with self._lock:
            job = self._require(job_id)
            progress = job.source_results.setdefault(source_name, SourceProgress())
            progress.error = error if not progress.error else f"{progress.error}; {error}"
            progress.finished_at = self.clock()
        self._persist(job)
        logger.warning(f"Job {job_id}: {source_name} reported an error: {error}")
        return job

    def complete_job(self, job_id: str, events_saved: int, note: Optional[str] = None) -> CrawlJob:
        with self._lock:
            job = self._require(job_id)
            job.status = JobStatus.completed
            job.completed_at = self.clock()
            job.events_saved = events_saved
            job.error = note
        self._persist(job)
        logger.info(f"Job {job_id} completed: {job.summary()}")
        return job

    def fail_job(
        self,
        job_id: str,
        error: str,
        kind: ErrorKind = ErrorKind.UNEXPECTED,
        events_saved: Optional[int] = None,
    ) -> CrawlJob:
        """Mark a job failed. Per-source progress is preserved."""
        with self._lock:
            job = self._require(job_id)
            job.status = JobStatus.failed
            job.completed_at = self.clock()
            job.error = error
            job.error_kind = kind
            if events_saved is not None:
                job.events_saved = events_saved
        self._persist(job)
        logger.error(f"Job {job_id} failed ({kind.value}): {error}")
        return job

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> Optional[CrawlJob]:
        """Look a job up in memory, then in the store."""
        with self._lock:
            job = self._jobs.get(job_id)
        if job is not None:
            return job.model_copy(deep=True)
        if self.store is None:
            return None
        record = self.store.get(f"{JOB_KEY_PREFIX}{job_id}")
        return CrawlJob.model_validate(record) if record else None

    def list_jobs(self, limit: int = 20) -> List[CrawlJob]:
        """Job history, newest first."""
        jobs: Dict[str, CrawlJob] = {}
        if self.store is not None:
            for record in self.store.query(prefix=JOB_KEY_PREFIX):
                job = CrawlJob.model_validate(record)
                jobs[job.id] = job
        with self._lock:
            for job in self._jobs.values():
                jobs[job.id] = job.model_copy(deep=True)

        ordered = sorted(
            jobs.values(),
            key=lambda j: j.started_at or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        return ordered[:limit]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, job_id: str) -> CrawlJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise KeyError(f"Unknown job: {job_id}")
        return job

    def _trim(self) -> None:
        finished = [jid for jid, j in self._jobs.items() if j.status.is_final]
        while len(self._jobs) > self.history_limit and finished:
            del self._jobs[finished.pop(0)]

    def _persist(self, job: CrawlJob) -> None:
        if self.store is None:
            return
        with self._lock:
            snapshot = job.model_dump(mode="json")
        try:
            self.store.put(f"{JOB_KEY_PREFIX}{job.id}", snapshot)
        except Exception as e:
            logger.warning(f"Could not persist job {job.id}: {e}")
