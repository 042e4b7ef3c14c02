from event_harvester.ingestion.adapters.base_adapter import (
    PageAutomation,
    PageHandle,
    SourceAdapter,
    extract_with_selectors,
)

__all__ = [
    "PageAutomation",
    "PageHandle",
    "SourceAdapter",
    "extract_with_selectors",
]
