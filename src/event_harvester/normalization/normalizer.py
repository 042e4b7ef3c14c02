"""
Event Normalizer.

Turns RawEventRecords into NormalizedEvents using the field parsers.

A record is rejected (dropped with a logged reason, never raised) when it has
no usable start date, or when it carries time text that cannot be parsed.
Price text never causes a rejection.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List, Optional, Tuple, Union
from urllib.parse import urljoin, urlparse

from event_harvester.ingestion.deduplication import compute_dedup_key
from event_harvester.normalization.category import map_category
from event_harvester.normalization.dates import (
    local_today,
    parse_date_range,
    parse_date_result,
)
from event_harvester.normalization.parse_result import Parsed
from event_harvester.normalization.price import parse_price
from event_harvester.normalization.times import parse_time, parse_time_result
from event_harvester.schemas.event import ExtractionMethod, NormalizedEvent, RawEventRecord
from event_harvester.schemas.source import SourceConfig

logger = logging.getLogger(__name__)

# Time text that means "no specific start time" rather than a parse failure
NO_TIME_TOKENS = frozenset({"all day", "all-day", "tba", "tbd", "various times", "varies"})


class RejectReason:
    MISSING_TITLE = "missing_title"
    MISSING_DATE = "missing_date"
    UNPARSEABLE_DATE = "unparseable_date"
    UNPARSEABLE_TIME = "unparseable_time"
    INVALID_RECORD = "invalid_record"


@dataclass
class NormalizationOutcome:
    """Either a normalized event or the reason the record was dropped."""

    event: Optional[NormalizedEvent] = None
    reason: Optional[str] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.event is not None


@dataclass
class NormalizationReport:
    events: List[NormalizedEvent] = field(default_factory=list)
    rejected: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)


def _collapse(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    collapsed = " ".join(str(text).split())
    return collapsed or None


def resolve_url(url: Optional[str], base_url: str) -> Optional[str]:
    """Resolve a possibly relative link against the source's base URL."""
    url = _collapse(url)
    if not url or url.startswith(("javascript:", "mailto:", "#")):
        return None
    resolved = urljoin(base_url + "/", url)
    if urlparse(resolved).scheme not in ("http", "https"):
        return None
    return resolved


class EventNormalizer:
    """
    Normalize raw records for one source at a time.

    Args:
        today: Fixed reference date, or None to use the local date per call.
        timezone: Timezone used to compute the local date.
    """

    def __init__(self, today: Optional[date] = None, timezone: str = "America/New_York"):
        self._today = today
        self._timezone = timezone

    def today(self) -> date:
        return self._today or local_today(self._timezone)

    def normalize(self, raw: RawEventRecord, source: SourceConfig) -> NormalizationOutcome:
        today = self.today()

        if not _collapse(raw.title):
            return NormalizationOutcome(reason=RejectReason.MISSING_TITLE)

        if not _collapse(raw.date_text):
            return NormalizationOutcome(reason=RejectReason.MISSING_DATE)

        date_result = parse_date_result(raw.date_text, source.date_formats, today)
        if not isinstance(date_result, Parsed):
            return NormalizationOutcome(
                reason=RejectReason.UNPARSEABLE_DATE, detail=date_result.reason
            )
        start_date = date_result.value.isoformat()

        end_date = None
        if _collapse(raw.end_date_text):
            end_date = self._parse_end_date(raw.end_date_text, source, today)
        else:
            date_range = parse_date_range(raw.date_text, today)
            if date_range and date_range.end != date_range.start:
                end_date = date_range.end
        if end_date is not None and end_date < start_date:
            end_date = None

        start_time, time_reason = self._parse_time(raw)
        if time_reason is not None:
            return NormalizationOutcome(reason=RejectReason.UNPARSEABLE_TIME, detail=time_reason)

        method = ExtractionMethod(raw.extraction_method or ExtractionMethod.CSS_SELECTOR)
        confidence = None
        if method.is_ai:
            confidence = raw.confidence if raw.confidence is not None else 0.0

        try:
            event = NormalizedEvent(
                title=raw.title,
                start_date=start_date,
                end_date=end_date,
                start_time=start_time,
                price=parse_price(raw.price_text),
                location=_collapse(raw.location_text),
                venue=_collapse(raw.venue_text),
                description=_collapse(raw.description_text),
                detail_url=resolve_url(raw.detail_url, source.base_url),
                image_url=resolve_url(raw.image_url, source.base_url),
                category=map_category(raw.category_text, source.category_mapping),
                source_name=raw.source_name,
                source_url=raw.source_url,
                extraction_method=method,
                confidence=confidence,
            )
        except ValueError as e:
            return NormalizationOutcome(reason=RejectReason.INVALID_RECORD, detail=str(e))

        event.dedup_key = compute_dedup_key(event)
        return NormalizationOutcome(event=event)

    def normalize_all(
        self,
        records: Iterable[RawEventRecord],
        source: SourceConfig,
        log: Union[logging.Logger, logging.LoggerAdapter, None] = None,
    ) -> NormalizationReport:
        """Normalize a batch, logging every rejection with its reason."""
        log = log or logger
        report = NormalizationReport()
        for raw in records:
            outcome = self.normalize(raw, source)
            if outcome.ok:
                report.events.append(outcome.event)
                continue
            report.rejected.append((raw.title, outcome.reason))
            log.info(
                f"Dropped '{raw.title}': {outcome.reason}",
                extra={
                    "event": "record_rejected",
                    "payload": {
                        "reason": outcome.reason,
                        "detail": outcome.detail,
                        "date_text": raw.date_text,
                        "time_text": raw.time_text,
                        "method": raw.extraction_method,
                    },
                },
            )
        return report

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _parse_end_date(self, text: str, source: SourceConfig, today: date) -> Optional[str]:
        result = parse_date_result(text, source.date_formats, today)
        if isinstance(result, Parsed):
            return result.value.isoformat()
        return None

    def _parse_time(self, raw: RawEventRecord) -> Tuple[Optional[str], Optional[str]]:
        """Return (canonical_time, rejection_detail)."""
        time_text = _collapse(raw.time_text)
        if time_text:
            if time_text.lower() in NO_TIME_TOKENS:
                return None, None
            result = parse_time_result(time_text)
            if isinstance(result, Parsed):
                return result.value, None
            return None, result.reason
        # "June 15, 2024 at 7:00 PM" carries its own time
        return parse_time(raw.date_text), None
