"""
Crawl Scheduler.

Runs crawls over configured sources, either on cron buckets or on demand:

    extract (per source) -> normalize -> dedup -> batch + submit -> job status

Only one run may be active at a time. The run lock is acquired before a job
is created, so a rejected request never touches the job that is in progress.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Set, Tuple
from zoneinfo import ZoneInfo

from croniter import croniter

from event_harvester.configs.settings import Settings, get_settings
from event_harvester.ingestion.adapters.base_adapter import PageAutomation
from event_harvester.ingestion.batcher import PayloadBatcher
from event_harvester.ingestion.deduplication import (
    DedupRegistry,
    DeduplicationEngine,
    compute_dedup_key,
)
from event_harvester.ingestion.extraction.ai_extractor import AIExtractor
from event_harvester.ingestion.extraction.strategy import ExtractionReport, ExtractionStrategyEngine
from event_harvester.ingestion.job_tracker import JobTracker
from event_harvester.monitoring.logging import with_context
from event_harvester.normalization.normalizer import EventNormalizer
from event_harvester.runtime.errors import (
    CrawlAlreadyRunningError,
    CrawlTimeoutError,
    ErrorKind,
    HarvesterError,
    SourceNotFoundError,
    WorkflowSubmissionError,
)
from event_harvester.runtime.resilience import Deadline
from event_harvester.schemas.event import NormalizedEvent
from event_harvester.schemas.job import MANUAL_TRIGGER, CrawlJob, JobStatus
from event_harvester.schemas.source import BucketName, ScheduleBucket, SourceConfig
from event_harvester.storage.event_store import EventStore
from event_harvester.storage.workflow import WorkflowExecutor

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# RUN LOCK
# =============================================================================


class RunLock:
    """
    Process-wide "a crawl is running" flag.

    Acquisition is a non-blocking check-and-set; the lock is released on
    every exit path of the ``hold`` block.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.holder: Optional[str] = None

    @property
    def locked(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self, holder: str) -> Iterator["RunLock"]:
        """
        Raises:
            CrawlAlreadyRunningError: if another run holds the lock.
        """
        if not self._lock.acquire(blocking=False):
            raise CrawlAlreadyRunningError(self.holder)
        self.holder = holder
        try:
            yield self
        finally:
            self.holder = None
            self._lock.release()


# =============================================================================
# RESULTS
# =============================================================================


@dataclass
class RunSummary:
    job_id: str
    status: JobStatus
    events_found: int = 0
    events_normalized: int = 0
    events_saved: int = 0
    duplicates: int = 0
    rejected: int = 0
    error: Optional[str] = None

    @classmethod
    def from_job(cls, job: CrawlJob, **counts) -> "RunSummary":
        return cls(
            job_id=job.id,
            status=job.status,
            events_found=job.events_found,
            events_saved=job.events_saved,
            error=job.error,
            **counts,
        )


# =============================================================================
# SCHEDULER
# =============================================================================


class CrawlScheduler:
    """
    Coordinates crawl runs.

    Collaborators are injected; their lifecycle (browser, DB connection,
    HTTP session) belongs to the caller.

    Args:
        sources: Configured sources, in run order
        schedules: Cron buckets by name
        executor: Downstream workflow executor
        automation: Page automation used by the extraction engine
        ai_extractor: AI collaborator, or None to disable AI steps
        store: Event store for cross-run dedup and job snapshots
        settings: Runtime settings; defaults to the cached application settings
        tracker: Job tracker; one backed by ``store`` is created when omitted
        today: Fixed reference date for normalization (tests)
        sleep: Sleep function for politeness delays and retries
        clock: Current time, used for cron computations
    """

    def __init__(
        self,
        sources: Sequence[SourceConfig],
        schedules: Dict[BucketName, ScheduleBucket],
        *,
        executor: WorkflowExecutor,
        automation: PageAutomation,
        ai_extractor: Optional[AIExtractor] = None,
        store: Optional[EventStore] = None,
        settings: Optional[Settings] = None,
        tracker: Optional[JobTracker] = None,
        today: Optional[date] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.settings = settings or get_settings()
        self.sources: Dict[str, SourceConfig] = {s.name: s for s in sources}
        self.schedules = schedules
        self.store = store
        self.automation = automation
        self.tracker = tracker if tracker is not None else JobTracker(store=store)
        self.engine = ExtractionStrategyEngine.from_settings(
            self.settings, automation, ai_extractor, sleep=sleep
        )
        self.batcher = PayloadBatcher(executor, event_type=self.settings.EVENT_TYPE)
        self.normalizer = EventNormalizer(today=today, timezone=self.settings.TIMEZONE)
        self.run_lock = RunLock()
        self.sleep = sleep
        self.clock = clock

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def run_manual(self, source_names: Optional[Sequence[str]] = None) -> RunSummary:
        """
        Run now over the named sources, or every configured source.

        Unknown names are logged and skipped.

        Raises:
            CrawlAlreadyRunningError: if a run is already in progress.
            SourceNotFoundError: if none of the requested names is configured.
        """
        if source_names:
            sources = self._resolve(source_names)
            if not sources:
                raise SourceNotFoundError(", ".join(source_names))
        else:
            sources = list(self.sources.values())
        return self._run(sources, MANUAL_TRIGGER)

    def run_bucket(self, bucket_name: BucketName) -> Optional[RunSummary]:
        """
        Run one schedule bucket. Returns None when another run holds the lock.
        """
        bucket = self.schedules.get(BucketName(bucket_name))
        if bucket is None:
            raise KeyError(f"No schedule bucket named {bucket_name}")
        sources = self._resolve(bucket.sources)
        try:
            return self._run(sources, bucket.name.value)
        except CrawlAlreadyRunningError as e:
            logger.warning(
                f"Skipping {bucket.name.value} run: {e}",
                extra={"stage": "schedule", "event": "run_skipped"},
            )
            return None

    def next_fire_times(self, now: Optional[datetime] = None) -> Dict[BucketName, datetime]:
        """Next cron fire time of every enabled bucket that has sources."""
        now = now or self.clock()
        fires: Dict[BucketName, datetime] = {}
        for name, bucket in self.schedules.items():
            if not bucket.enabled or not bucket.sources:
                continue
            local_now = now.astimezone(ZoneInfo(bucket.timezone))
            fires[name] = croniter(bucket.cron, local_now).get_next(datetime)
        return fires

    def serve(self, stop_event: Optional[threading.Event] = None) -> None:
        """Wait for the earliest due bucket and run it, until stop_event is set."""
        stop_event = stop_event or threading.Event()
        log = with_context(logger, stage="schedule")

        while not stop_event.is_set():
            fires = self.next_fire_times()
            if not fires:
                log.warning("No enabled schedule buckets; scheduler exiting")
                return
            bucket_name, fire_at = min(fires.items(), key=lambda item: item[1])
            wait_s = max(0.0, (fire_at - self.clock()).total_seconds())
            log.info(
                f"Next run: {bucket_name.value} at {fire_at.isoformat()}",
                extra={"event": "next_fire", "payload": {"wait_s": round(wait_s, 1)}},
            )
            if stop_event.wait(timeout=wait_s):
                break
            try:
                self.run_bucket(bucket_name)
            except HarvesterError as e:
                log.error(f"{bucket_name.value} run failed: {e}")
            except Exception:
                log.exception(f"{bucket_name.value} run crashed")

        log.info("Scheduler stopped")

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def _run(self, sources: List[SourceConfig], trigger: str) -> RunSummary:
        with self.run_lock.hold(trigger) as lock:
            job = self.tracker.create_job([s.name for s in sources], trigger)
            lock.holder = job.id
            log = with_context(logger, run_id=job.id)
            deadline = Deadline(self.settings.RUN_DEADLINE_S)
            counts: Dict[str, int] = {"events_normalized": 0, "duplicates": 0, "rejected": 0}
            saved = 0
            registry = DedupRegistry(
                store=self.store, cross_run=self.settings.CROSS_RUN_DEDUP, run_id=job.id
            )
            delivered: Set[str] = set()

            try:
                reports, skipped = self._extract_all(sources, job, deadline, log)

                normalized = self._normalize(sources, reports, log)
                counts["events_normalized"] = len(normalized)
                counts["rejected"] = sum(len(r.records) for r in reports.values()) - len(normalized)

                dedup = DeduplicationEngine(registry).deduplicate(
                    normalized, log=log.bind(stage="dedup")
                )
                counts["duplicates"] = dedup.dropped

                saved, failed_batches, total_batches, submit_skipped = self._submit(
                    sources, dedup.unique, job, deadline, log, delivered
                )

                if skipped or submit_skipped:
                    raise CrawlTimeoutError(skipped)
                if total_batches and failed_batches == total_batches:
                    raise WorkflowSubmissionError(f"All {total_batches} batch submission(s) failed")

                note = None
                if failed_batches:
                    note = f"{failed_batches} of {total_batches} batch(es) failed"
                job = self.tracker.complete_job(job.id, saved, note=note)

            except HarvesterError as e:
                job = self.tracker.fail_job(job.id, str(e), e.kind, events_saved=saved)
                raise
            except Exception as e:
                job = self.tracker.fail_job(job.id, str(e), ErrorKind.UNEXPECTED, events_saved=saved)
                raise
            finally:
                released = registry.release(delivered)
                if released:
                    log.info(
                        f"Released {released} dedup marker(s) for undelivered events",
                        extra={"stage": "dedup", "event": "markers_released"},
                    )

        summary = RunSummary.from_job(job, **counts)
        log.info(
            f"Run finished: {job.summary()}",
            extra={"event": "run_finished", "payload": dict(counts, saved=summary.events_saved)},
        )
        return summary

    def _resolve(self, names: Sequence[str]) -> List[SourceConfig]:
        resolved = []
        for name in names:
            source = self.sources.get(name)
            if source is None:
                logger.warning(f"Unknown source '{name}' skipped")
                continue
            resolved.append(source)
        return resolved

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _extract_all(
        self,
        sources: List[SourceConfig],
        job: CrawlJob,
        deadline: Deadline,
        log,
    ) -> Tuple[Dict[str, ExtractionReport], List[str]]:
        """
        Extract every source. Results are keyed by source name and later read
        back in configured order, so concurrency does not change the output.
        """
        reports: Dict[str, ExtractionReport] = {}
        skipped: List[str] = []
        workers = min(self.settings.MAX_CONCURRENT_SOURCES, max(1, len(sources)))

        if workers == 1:
            for i, source in enumerate(sources):
                if i:
                    self._polite_pause(deadline)
                if deadline.expired():
                    skipped.append(source.name)
                    continue
                reports[source.name] = self._extract_source(source, job, deadline, log)
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="crawl") as pool:
                futures = {}
                for i, source in enumerate(sources):
                    if i:
                        self._polite_pause(deadline)
                    if deadline.expired():
                        skipped.append(source.name)
                        continue
                    futures[source.name] = pool.submit(self._extract_in_worker, source, job, deadline, log)
                for name, future in futures.items():
                    reports[name] = future.result()

        for name, report in reports.items():
            if report.deadline_reached and name not in skipped:
                skipped.append(name)
        if skipped:
            log.warning(
                f"Run deadline reached; {len(skipped)} source(s) incomplete",
                extra={"stage": "extract", "event": "deadline_reached", "payload": {"sources": skipped}},
            )
        return reports, skipped

    def _extract_in_worker(self, source: SourceConfig, job: CrawlJob, deadline: Deadline, log) -> ExtractionReport:
        try:
            return self._extract_source(source, job, deadline, log)
        finally:
            self.automation.release()

    def _extract_source(self, source: SourceConfig, job: CrawlJob, deadline: Deadline, log) -> ExtractionReport:
        source_log = log.bind(source=source.name, stage="extract")
        try:
            report = self.engine.extract_source(source, deadline=deadline, log=source_log)
        except Exception as e:
            source_log.exception(f"Extraction crashed: {e}")
            self.tracker.record_error(job.id, source.name, str(e))
            return ExtractionReport(source_name=source.name)

        if report.errors:
            self.tracker.record_error(job.id, source.name, "; ".join(report.errors))
        self.tracker.record_progress(job.id, source.name, len(report.records))
        return report

    def _polite_pause(self, deadline: Deadline) -> None:
        delay = min(self.settings.REQUEST_DELAY_S, deadline.remaining_s())
        if delay > 0:
            self.sleep(delay)

    def _normalize(
        self,
        sources: List[SourceConfig],
        reports: Dict[str, ExtractionReport],
        log,
    ) -> List[NormalizedEvent]:
        events: List[NormalizedEvent] = []
        for source in sources:
            report = reports.get(source.name)
            if report is None or not report.records:
                continue
            result = self.normalizer.normalize_all(
                report.records, source, log=log.bind(source=source.name, stage="normalize")
            )
            events.extend(result.events)
        return events

    def _submit(
        self,
        sources: List[SourceConfig],
        events: List[NormalizedEvent],
        job: CrawlJob,
        deadline: Deadline,
        log,
        delivered: Set[str],
    ) -> Tuple[int, int, int, bool]:
        """
        Submit unique events grouped by source, in configured order.

        Dedup keys of events in accepted batches are added to delivered.

        Returns:
            (events submitted, failed batches, attempted batches, deadline hit)
        """
        by_source: Dict[str, List[NormalizedEvent]] = {}
        for event in events:
            by_source.setdefault(event.source_name, []).append(event)

        saved = failed = attempted = 0
        deadline_hit = False
        for source in sources:
            batch_events = by_source.get(source.name)
            if not batch_events:
                continue
            source_log = log.bind(source=source.name, stage="submit")
            try:
                report = self.batcher.submit(
                    batch_events, source.name, deadline=deadline, log=source_log
                )
            except WorkflowSubmissionError as e:
                self.tracker.record_error(job.id, source.name, str(e))
                failed += len(e.failed_batches)
                attempted += len(e.failed_batches)
                continue
            for outcome in report.submitted:
                delivered.update(e.dedup_key or compute_dedup_key(e) for e in outcome.events)
            saved += report.events_submitted
            failed += len(report.failed)
            attempted += len(report.submitted) + len(report.failed)
            deadline_hit = deadline_hit or report.deadline_reached
        return saved, failed, attempted, deadline_hit
