from event_harvester.runtime.errors import (
    ConfigError,
    CrawlAlreadyRunningError,
    CrawlTimeoutError,
    ErrorKind,
    ExtractionError,
    HarvesterError,
    NavigationError,
    PayloadTooLargeError,
    SourceNotFoundError,
    WorkflowSubmissionError,
)
from event_harvester.runtime.resilience import Deadline, RetryPolicy, retry_call

__all__ = [
    "ConfigError",
    "CrawlAlreadyRunningError",
    "CrawlTimeoutError",
    "Deadline",
    "ErrorKind",
    "ExtractionError",
    "HarvesterError",
    "NavigationError",
    "PayloadTooLargeError",
    "RetryPolicy",
    "SourceNotFoundError",
    "WorkflowSubmissionError",
    "retry_call",
]
