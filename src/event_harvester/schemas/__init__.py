from event_harvester.schemas.event import (
    ExtractionMethod,
    NormalizedEvent,
    PriceInfo,
    PriceType,
    RawEventRecord,
)
from event_harvester.schemas.job import CrawlJob, JobStatus, SourceProgress
from event_harvester.schemas.source import (
    BucketName,
    ScheduleBucket,
    SelectorMap,
    SourceConfig,
)

__all__ = [
    "BucketName",
    "CrawlJob",
    "ExtractionMethod",
    "JobStatus",
    "NormalizedEvent",
    "PriceInfo",
    "PriceType",
    "RawEventRecord",
    "ScheduleBucket",
    "SelectorMap",
    "SourceConfig",
    "SourceProgress",
]
