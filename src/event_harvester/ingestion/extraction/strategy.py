"""
Extraction Strategy Engine.

Chooses how events are pulled out of each listing page:

1. AI-first: accepted when the AI result is non-empty and its confidence
   reaches the threshold -> ``ai-agent``
2. Selectors: any non-empty result -> ``css-selector``
3. AI fallback: when selectors found nothing, the AI is asked again and its
   answer is accepted regardless of confidence -> ``ai-fallback``

Each step is fault-tolerant on its own: a failing step is logged and the next
one runs. A page that cannot be loaded contributes zero events.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Union

from event_harvester.ingestion.adapters.base_adapter import (
    DEFAULT_NAVIGATION_POLICY,
    DEFAULT_PAGE_TIMEOUT_S,
    PageAutomation,
    PageHandle,
    SourceAdapter,
)
from event_harvester.ingestion.extraction.ai_extractor import MAX_TEXT_CHARS, AIExtractionResult, AIExtractor
from event_harvester.runtime.errors import NavigationError
from event_harvester.runtime.resilience import Deadline, RetryPolicy
from event_harvester.schemas.event import ExtractionMethod, RawEventRecord
from event_harvester.schemas.source import SourceConfig

logger = logging.getLogger(__name__)

Log = Union[logging.Logger, logging.LoggerAdapter]

DEFAULT_CONFIDENCE_THRESHOLD = 0.7
DEFAULT_AI_TIMEOUT_S = 60.0


# =============================================================================
# REPORTS
# =============================================================================


@dataclass
class StepAttempt:
    """One strategy step tried on a page and why it was accepted or passed over."""

    step: str
    accepted: bool
    found: int = 0
    reason: Optional[str] = None


@dataclass
class PageReport:
    url: str
    method: Optional[ExtractionMethod] = None
    events_found: int = 0
    attempts: List[StepAttempt] = field(default_factory=list)
    error: Optional[str] = None
    skipped: bool = False


@dataclass
class ExtractionReport:
    """All records for one source plus the per-page attempt log."""

    source_name: str
    records: List[RawEventRecord] = field(default_factory=list)
    pages: List[PageReport] = field(default_factory=list)

    @property
    def errors(self) -> List[str]:
        return [p.error for p in self.pages if p.error]

    @property
    def methods(self) -> List[str]:
        return [p.method.value for p in self.pages if p.method]

    @property
    def deadline_reached(self) -> bool:
        return any(p.skipped for p in self.pages)


# =============================================================================
# ENGINE
# =============================================================================


class ExtractionStrategyEngine:
    """
    Run the AI-first / selector / AI-fallback chain for each page of a source.

    Args:
        automation: Page automation shared by the source adapters
        ai_extractor: AI collaborator, or None to skip both AI steps
        ai_enabled: Master switch for AI steps
        ai_fallback: Whether step 3 runs when selectors find nothing
        confidence_threshold: Minimum AI confidence for step 1
        ai_timeout_s: Timeout for one AI call, clipped to the run deadline
        max_text_chars: Page text handed to the AI is truncated to this length
        navigation_policy: Retries for page loads
        page_timeout_s: Timeout for one page load attempt
        sleep: Sleep function used between navigation retries
    """

    def __init__(
        self,
        automation: PageAutomation,
        ai_extractor: Optional[AIExtractor] = None,
        *,
        ai_enabled: bool = True,
        ai_fallback: bool = True,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        ai_timeout_s: float = DEFAULT_AI_TIMEOUT_S,
        max_text_chars: int = MAX_TEXT_CHARS,
        navigation_policy: RetryPolicy = DEFAULT_NAVIGATION_POLICY,
        page_timeout_s: float = DEFAULT_PAGE_TIMEOUT_S,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.automation = automation
        self.ai_extractor = ai_extractor
        self.ai_enabled = ai_enabled and ai_extractor is not None
        self.ai_fallback = ai_fallback
        self.confidence_threshold = confidence_threshold
        self.ai_timeout_s = ai_timeout_s
        self.max_text_chars = max_text_chars
        self.navigation_policy = navigation_policy
        self.page_timeout_s = page_timeout_s
        self.sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings,
        automation: PageAutomation,
        ai_extractor: Optional[AIExtractor] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "ExtractionStrategyEngine":
        return cls(
            automation,
            ai_extractor,
            ai_enabled=settings.AI_ENABLED,
            ai_fallback=settings.AI_FALLBACK_ENABLED,
            confidence_threshold=settings.AI_CONFIDENCE_THRESHOLD,
            ai_timeout_s=settings.AI_TIMEOUT_S,
            max_text_chars=settings.AI_MAX_TEXT_CHARS,
            navigation_policy=RetryPolicy(
                max_attempts=settings.NAVIGATION_MAX_ATTEMPTS,
                backoff_mode="fixed",
                base_delay_s=settings.NAVIGATION_RETRY_DELAY_S,
            ),
            page_timeout_s=settings.PAGE_TIMEOUT_S,
            sleep=sleep,
        )

    def adapter_for(self, source: SourceConfig) -> SourceAdapter:
        return SourceAdapter(
            source,
            self.automation,
            policy=self.navigation_policy,
            page_timeout_s=self.page_timeout_s,
            sleep=self.sleep,
        )

    def extract_source(
        self,
        source: SourceConfig,
        deadline: Optional[Deadline] = None,
        log: Optional[Log] = None,
    ) -> ExtractionReport:
        """Extract every configured listing page of a source, in order."""
        log = log or logger
        adapter = self.adapter_for(source)
        report = ExtractionReport(source_name=source.name)

        for url in adapter.event_urls:
            if deadline is not None and deadline.expired():
                report.pages.append(PageReport(url=url, skipped=True, error="run deadline reached"))
                continue

            try:
                page = adapter.fetch_page(url, deadline=deadline)
            except NavigationError as e:
                log.warning(
                    f"Could not load {url}: {e}",
                    extra={"event": "navigation_failed", "payload": {"url": url}},
                )
                report.pages.append(PageReport(url=url, error=str(e)))
                continue

            page_report, records = self.extract_page(adapter, page, deadline=deadline, log=log)
            report.pages.append(page_report)
            report.records.extend(records)

        log.info(
            f"Extracted {len(report.records)} record(s) from {len(adapter.event_urls)} page(s)",
            extra={
                "event": "source_extracted",
                "payload": {"methods": report.methods, "errors": len(report.errors)},
            },
        )
        return report

    def extract_page(
        self,
        adapter: SourceAdapter,
        page: PageHandle,
        deadline: Optional[Deadline] = None,
        log: Optional[Log] = None,
    ) -> "tuple[PageReport, List[RawEventRecord]]":
        """Run the strategy chain on one loaded page."""
        log = log or logger
        report = PageReport(url=page.url)
        source = adapter.source
        page_text: Optional[str] = None

        # 1. AI-first
        if self.ai_enabled:
            page_text = page.text(self.max_text_chars)
            result = self._call_ai(page_text, source.name, page.url, deadline, report, "ai-first", log)
            if result is not None:
                if result.is_empty:
                    report.attempts.append(StepAttempt("ai-first", False, 0, "no events"))
                elif result.confidence < self.confidence_threshold:
                    report.attempts.append(
                        StepAttempt(
                            "ai-first",
                            False,
                            len(result.events),
                            f"confidence {result.confidence:.2f} below {self.confidence_threshold:.2f}",
                        )
                    )
                else:
                    report.attempts.append(StepAttempt("ai-first", True, len(result.events)))
                    return self._accept(report, result.events, ExtractionMethod.AI_AGENT, page, result.confidence, source.name, log)
        else:
            report.attempts.append(StepAttempt("ai-first", False, 0, "ai disabled"))

        # 2. Selectors
        try:
            records = adapter.extract(page)
        except Exception as e:
            log.warning(f"Selector extraction failed on {page.url}: {e}")
            report.attempts.append(StepAttempt("selectors", False, 0, f"error: {e}"))
            records = []
        else:
            if records:
                report.attempts.append(StepAttempt("selectors", True, len(records)))
                return self._accept(report, records, ExtractionMethod.CSS_SELECTOR, page, None, source.name, log)
            report.attempts.append(StepAttempt("selectors", False, 0, "no matches"))

        # 3. AI fallback
        if not (self.ai_enabled and self.ai_fallback):
            report.attempts.append(StepAttempt("ai-fallback", False, 0, "ai fallback disabled"))
            return report, []

        if page_text is None:
            page_text = page.text(self.max_text_chars)
        result = self._call_ai(page_text, source.name, page.url, deadline, report, "ai-fallback", log)
        if result is None:
            return report, []
        if result.is_empty:
            report.attempts.append(StepAttempt("ai-fallback", False, 0, "no events"))
            return report, []
        report.attempts.append(StepAttempt("ai-fallback", True, len(result.events)))
        return self._accept(report, result.events, ExtractionMethod.AI_FALLBACK, page, result.confidence, source.name, log)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _call_ai(
        self,
        page_text: str,
        source_name: str,
        url: str,
        deadline: Optional[Deadline],
        report: PageReport,
        step: str,
        log: Log,
    ) -> Optional[AIExtractionResult]:
        """Call the AI collaborator; None means the step failed and was logged."""
        timeout_s = self.ai_timeout_s
        if deadline is not None:
            if deadline.expired():
                report.attempts.append(StepAttempt(step, False, 0, "run deadline reached"))
                return None
            timeout_s = deadline.clip(timeout_s)
        try:
            return self.ai_extractor.extract(page_text, source_name, source_url=url, timeout_s=timeout_s)
        except Exception as e:
            log.warning(f"{step} extraction failed on {url}: {e}")
            report.attempts.append(StepAttempt(step, False, 0, f"error: {e}"))
            return None

    def _accept(
        self,
        report: PageReport,
        records: List[RawEventRecord],
        method: ExtractionMethod,
        page: PageHandle,
        confidence: Optional[float],
        source_name: str,
        log: Log,
    ) -> "tuple[PageReport, List[RawEventRecord]]":
        stamped = [_stamp(r, method, source_name, page.url, confidence) for r in records]
        report.method = method
        report.events_found = len(stamped)
        log.info(
            f"{len(stamped)} event(s) via {method.value} on {page.url}",
            extra={
                "event": "page_extracted",
                "payload": {"method": method.value, "events": len(stamped), "confidence": confidence},
            },
        )
        for record in stamped:
            log.debug(f"'{record.title}' extracted via {method.value}")
        return report, stamped


def _stamp(
    record: RawEventRecord,
    method: ExtractionMethod,
    source_name: str,
    page_url: str,
    confidence: Optional[float],
) -> RawEventRecord:
    """Copy a record with provenance filled in."""
    update = {
        "extraction_method": method.value,
        "source_name": source_name,
        "source_url": record.source_url or page_url,
    }
    if method.is_ai:
        update["confidence"] = record.confidence if record.confidence is not None else confidence
    else:
        update["confidence"] = None
    return record.model_copy(update=update)
