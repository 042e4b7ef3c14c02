"""
event_harvester.runtime.errors

Exception taxonomy for the harvesting pipeline.

Per-record and per-source failures are recovered where they happen; only the
errors marked fatal below are expected to reach a top-level caller.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Classification stored on a failed CrawlJob."""

    TIMEOUT = "timeout"
    FATAL = "fatal"
    SUBMISSION = "submission"
    UNEXPECTED = "unexpected"


class HarvesterError(Exception):
    """Base class for all harvester errors."""

    kind: ErrorKind = ErrorKind.UNEXPECTED


class ConfigError(HarvesterError):
    """Source or schedule configuration could not be loaded."""


class SourceNotFoundError(HarvesterError):
    """A requested source name is not configured."""

    def __init__(self, name: str):
        super().__init__(f"Unknown source: {name}")
        self.name = name


class CrawlAlreadyRunningError(HarvesterError):
    """A run was requested while another run holds the run lock."""

    def __init__(self, holder: str | None = None):
        msg = "A crawl is already running"
        if holder:
            msg += f" (job {holder})"
        super().__init__(msg)
        self.holder = holder


class NavigationError(HarvesterError):
    """Transient site error: page could not be loaded or queried."""

    def __init__(self, url: str, message: str):
        super().__init__(f"Navigation to {url} failed: {message}")
        self.url = url


class ExtractionError(HarvesterError):
    """An extraction step failed for a page."""


class PayloadTooLargeError(HarvesterError):
    """A single event serializes above the hard payload limit."""

    kind = ErrorKind.FATAL

    def __init__(self, size: int, limit: int, title: str | None = None):
        label = f" '{title}'" if title else ""
        super().__init__(
            f"Event{label} serializes to {size} bytes, above the {limit} byte limit"
        )
        self.size = size
        self.limit = limit
        self.title = title


class WorkflowSubmissionError(HarvesterError):
    """Every batch handed to the workflow executor failed."""

    kind = ErrorKind.SUBMISSION

    def __init__(self, message: str, failed_batches: list[str] | None = None):
        super().__init__(message)
        self.failed_batches = failed_batches or []


class CrawlTimeoutError(HarvesterError):
    """The run deadline expired before every source was processed."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, skipped_sources: list[str] | None = None):
        skipped = skipped_sources or []
        msg = "Run deadline exceeded"
        if skipped:
            msg += f"; skipped sources: {', '.join(skipped)}"
        super().__init__(msg)
        self.skipped_sources = skipped
