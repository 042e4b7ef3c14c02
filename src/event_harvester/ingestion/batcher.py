"""
Payload Batcher.

Splits normalized events into byte-size-bounded batches and submits each to
the workflow executor.

Splitting (split_to_fit) is pure:
1. the whole list is one batch if its payload fits the safety margin;
2. otherwise events are chunked at ``max(1, floor(margin * 0.8 / avg_size))``;
3. any chunk still above the hard limit is bisected until it fits, and a
   single event above the hard limit raises PayloadTooLargeError.
"""

from __future__ import annotations

import itertools
import logging
import math
import re
import secrets
import threading
from dataclasses import dataclass, field
from typing import Any, Sequence

from event_harvester.runtime.errors import PayloadTooLargeError, WorkflowSubmissionError
from event_harvester.runtime.resilience import Deadline
from event_harvester.storage.workflow import (
    PAYLOAD_HARD_LIMIT,
    ExecutionHandle,
    WorkflowExecutor,
    serialize_payload,
)

logger = logging.getLogger(__name__)

SAFETY_MARGIN = 260_000
CHUNK_FILL_RATIO = 0.8
DEFAULT_EVENT_TYPE = "crawler.events"
MAX_BATCH_ID_LENGTH = 80

_counter = itertools.count(1)
_counter_lock = threading.Lock()

# ---------------------------------------------------------------------
# Pure splitting
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class Batch:
    """A slice of events whose payload serializes to size_bytes."""

    index: int
    depth: int
    part: int
    events: tuple
    payload: dict[str, Any]
    size_bytes: int


@dataclass(frozen=True)
class SplitPlan:
    batches: list[Batch]
    total_bytes: int
    batch_size: int
    bisections: int


def _as_dict(event: Any) -> dict[str, Any]:
    if hasattr(event, "to_payload"):
        return event.to_payload()
    return dict(event)


def build_payload(events: Sequence[Any], source: str, event_type: str) -> dict[str, Any]:
    return {
        "events": [_as_dict(e) for e in events],
        "source": source,
        "eventType": event_type,
    }


def _event_title(event: Any) -> str | None:
    if hasattr(event, "title"):
        return event.title
    if isinstance(event, dict):
        return event.get("title")
    return None


def plan_split(
    events: Sequence[Any],
    *,
    hard_limit: int = PAYLOAD_HARD_LIMIT,
    margin: int | None = None,
    source: str = "",
    event_type: str = DEFAULT_EVENT_TYPE,
) -> SplitPlan:
    """split_to_fit plus the figures behind the decision, for logging."""
    if not events:
        return SplitPlan(batches=[], total_bytes=0, batch_size=0, bisections=0)

    margin = min(margin if margin is not None else SAFETY_MARGIN, hard_limit)

    def measure(chunk: Sequence[Any]) -> tuple[dict[str, Any], int]:
        payload = build_payload(chunk, source, event_type)
        return payload, len(serialize_payload(payload))

    full_payload, total = measure(events)
    if total <= margin:
        batch = Batch(1, 0, 1, tuple(events), full_payload, total)
        return SplitPlan(batches=[batch], total_bytes=total, batch_size=len(events), bisections=0)

    avg = total / len(events)
    batch_size = max(1, math.floor((margin * CHUNK_FILL_RATIO) / avg))

    batches: list[Batch] = []
    bisections = 0

    def fit(chunk: Sequence[Any], index: int, depth: int) -> None:
        nonlocal bisections
        payload, size = measure(chunk)
        if size <= hard_limit:
            part = sum(1 for b in batches if b.index == index) + 1
            batches.append(Batch(index, depth, part, tuple(chunk), payload, size))
            return
        if len(chunk) == 1:
            raise PayloadTooLargeError(size, hard_limit, _event_title(chunk[0]))
        bisections += 1
        mid = len(chunk) // 2
        fit(chunk[:mid], index, depth + 1)
        fit(chunk[mid:], index, depth + 1)

    for i, start in enumerate(range(0, len(events), batch_size), start=1):
        fit(list(events[start:start + batch_size]), i, 0)

    return SplitPlan(batches=batches, total_bytes=total, batch_size=batch_size, bisections=bisections)


def split_to_fit(
    events: Sequence[Any],
    hard_limit: int = PAYLOAD_HARD_LIMIT,
    margin: int | None = None,
    *,
    source: str = "",
    event_type: str = DEFAULT_EVENT_TYPE,
) -> list[Batch]:
    """
    Partition events into batches whose payload is at most hard_limit bytes.

    Every input event appears in exactly one batch, in input order.

    Raises:
        PayloadTooLargeError: if one event cannot fit under hard_limit alone.
    """
    return plan_split(
        events, hard_limit=hard_limit, margin=margin, source=source, event_type=event_type
    ).batches


def make_batch_id(base: str, index: int, depth: int = 0, part: int = 1) -> str:
    """
    Unique, traceable batch id: base name, chunk index, sub-split part and
    depth, then a random suffix plus a process-wide counter.
    """
    with _counter_lock:
        n = next(_counter)
    safe_base = re.sub(r"[^A-Za-z0-9_-]+", "-", base).strip("-") or "events"
    tail = f"-batch-{index}"
    if depth:
        tail += f"-sub{part}-d{depth}"
    tail += f"-{secrets.token_hex(3)}-{n}"
    return safe_base[: MAX_BATCH_ID_LENGTH - len(tail)] + tail


# ---------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------


@dataclass
class BatchOutcome:
    batch_id: str
    event_count: int
    size_bytes: int
    handle: ExecutionHandle | None = None
    error: str | None = None
    skipped: bool = False
    events: tuple = field(default=(), repr=False)

    @property
    def ok(self) -> bool:
        return self.handle is not None


@dataclass
class SubmissionReport:
    outcomes: list[BatchOutcome] = field(default_factory=list)
    deadline_reached: bool = False

    @property
    def submitted(self) -> list[BatchOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[BatchOutcome]:
        return [o for o in self.outcomes if not o.ok and not o.skipped]

    @property
    def skipped(self) -> list[BatchOutcome]:
        return [o for o in self.outcomes if o.skipped]

    @property
    def events_submitted(self) -> int:
        return sum(o.event_count for o in self.submitted)

    @property
    def events_failed(self) -> int:
        return sum(o.event_count for o in self.failed)


class PayloadBatcher:
    """
    Split and submit events sequentially.

    A failed batch is logged and the next one is still attempted. The call
    raises WorkflowSubmissionError only when every attempted batch failed.
    Once the deadline has passed no new batch is started.
    """

    def __init__(
        self,
        executor: WorkflowExecutor,
        *,
        hard_limit: int = PAYLOAD_HARD_LIMIT,
        margin: int = SAFETY_MARGIN,
        event_type: str = DEFAULT_EVENT_TYPE,
    ):
        self.executor = executor
        self.hard_limit = hard_limit
        self.margin = margin
        self.event_type = event_type

    def submit(
        self,
        events: Sequence[Any],
        source: str,
        *,
        base_name: str | None = None,
        deadline: Deadline | None = None,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> SubmissionReport:
        log = log or logger
        report = SubmissionReport()
        if not events:
            log.info("No events to submit", extra={"event": "batch_skipped"})
            return report

        plan = plan_split(
            events,
            hard_limit=self.hard_limit,
            margin=self.margin,
            source=source,
            event_type=self.event_type,
        )
        log.info(
            f"Split {len(events)} events into {len(plan.batches)} batch(es)",
            extra={
                "event": "batch_split",
                "payload": {
                    "total_bytes": plan.total_bytes,
                    "batch_size": plan.batch_size,
                    "bisections": plan.bisections,
                    "sizes": [b.size_bytes for b in plan.batches],
                },
            },
        )

        base = base_name or source
        for batch in plan.batches:
            batch_id = make_batch_id(base, batch.index, batch.depth, batch.part)
            outcome = BatchOutcome(
                batch_id, len(batch.events), batch.size_bytes, events=batch.events
            )
            report.outcomes.append(outcome)

            if deadline is not None and deadline.expired():
                outcome.skipped = True
                report.deadline_reached = True
                continue

            try:
                outcome.handle = self.executor.submit(batch_id, batch.payload)
            except PayloadTooLargeError:
                raise
            except Exception as e:
                outcome.error = str(e)
                log.error(
                    f"Batch {batch_id} failed: {e}",
                    extra={"event": "batch_failed", "payload": {"events": outcome.event_count}},
                )
                continue

            log.info(
                f"Submitted batch {batch_id}",
                extra={
                    "event": "batch_submitted",
                    "payload": {
                        "events": outcome.event_count,
                        "bytes": outcome.size_bytes,
                        "execution_id": outcome.handle.execution_id,
                    },
                },
            )

        if report.failed and not report.submitted:
            raise WorkflowSubmissionError(
                f"All {len(report.failed)} batch submission(s) failed: {report.failed[-1].error}",
                failed_batches=[o.batch_id for o in report.failed],
            )
        return report
