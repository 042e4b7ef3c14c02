"""
event_harvester.schemas.job

CrawlJob: the tracked lifecycle of one scheduled or manual run.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from event_harvester.runtime.errors import ErrorKind

MANUAL_TRIGGER = "manual"


class JobStatus(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"

    @property
    def is_final(self) -> bool:
        return self in (JobStatus.completed, JobStatus.failed)


class SourceProgress(BaseModel):
    """Per-source outcome, kept on the job for diagnostics."""

    events_found: int = 0
    error: str | None = None
    finished_at: datetime | None = None


class CrawlJob(BaseModel):
    id: str
    source_names: list[str] = Field(default_factory=list)
    trigger: str = MANUAL_TRIGGER
    status: JobStatus = JobStatus.pending
    started_at: datetime | None = None
    completed_at: datetime | None = None
    events_found: int = 0
    events_saved: int = 0
    error: str | None = None
    error_kind: ErrorKind | None = None
    source_results: dict[str, SourceProgress] = Field(default_factory=dict)

    @property
    def duration_seconds(self) -> float:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return 0.0

    def summary(self) -> str:
        line = (
            f"{self.id} [{self.status.value}] trigger={self.trigger} "
            f"found={self.events_found} saved={self.events_saved}"
        )
        if self.error:
            line += f" error={self.error}"
        return line
