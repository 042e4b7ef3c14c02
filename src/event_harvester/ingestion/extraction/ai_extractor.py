"""
AI Event Extractor.

Asks an LLM to list the events found in a listing page's visible text and
turns the structured answer into RawEventRecords with a confidence score.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

from event_harvester.ingestion.extraction.extraction_models import ExtractedEvent, ExtractedEventList
from event_harvester.ingestion.extraction.llm_client import BaseLLMClient
from event_harvester.runtime.errors import ExtractionError
from event_harvester.schemas.event import RawEventRecord

logger = logging.getLogger(__name__)

MAX_TEXT_CHARS = 8000
MIN_TITLE_CHARS = 3

SYSTEM_PROMPT = """You are an expert event extraction agent. Analyze website content and extract every event it mentions.

INSTRUCTIONS:
1. Identify all events, activities, performances, exhibitions, meetings, or gatherings
2. Extract key information for each event
3. Be thorough but accurate: only extract real events
4. Convert dates to YYYY-MM-DD in start_date when the year is known; otherwise copy the date as written into date
5. Categorize events appropriately, primary category first
6. Estimate a confidence between 0 and 1 for each extraction

EXTRACT: concerts, performances, theater shows, exhibitions, museum events, sports events,
workshops, classes, festivals, parades, meetings, conferences, community and outdoor events.

DO NOT EXTRACT: general information about venues, historical facts, contact information,
directions, business hours or services."""


@dataclass
class AIExtractionResult:
    """Events found by the AI collaborator and its overall confidence (0.0-1.0)."""

    events: List[RawEventRecord] = field(default_factory=list)
    confidence: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.events


class AIExtractor(ABC):
    """Abstract AI extraction collaborator."""

    @abstractmethod
    def extract(
        self,
        page_text: str,
        source_name: str,
        source_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ) -> AIExtractionResult:
        """
        Extract events from cleaned page text.

        Raises:
            ExtractionError: if the model call fails.
        """
        pass


def estimate_confidence(event: ExtractedEvent) -> float:
    """Heuristic confidence for an event the model did not score."""
    score = 0.5
    if len(event.title.strip()) > 10:
        score += 0.1
    if event.start_date or event.date:
        score += 0.2
    if event.location or event.venue:
        score += 0.15
    if event.description and len(event.description.strip()) > 20:
        score += 0.1
    if event.category:
        score += 0.05
    return min(score, 1.0)


class AIEventExtractor(AIExtractor):
    """
    LLM-backed extractor.

    Args:
        llm_client: Client used for the structured-output call
        max_text_chars: Page text is truncated to this many characters
    """

    def __init__(self, llm_client: BaseLLMClient, max_text_chars: int = MAX_TEXT_CHARS):
        self.llm_client = llm_client
        self.max_text_chars = max_text_chars

    def extract(
        self,
        page_text: str,
        source_name: str,
        source_url: Optional[str] = None,
        timeout_s: Optional[float] = None,
    ) -> AIExtractionResult:
        text = " ".join((page_text or "").split())[: self.max_text_chars]
        if not text:
            return AIExtractionResult()

        try:
            response = self.llm_client.invoke_structured(
                SYSTEM_PROMPT,
                self._build_user_prompt(text, source_name),
                ExtractedEventList,
                timeout_s=timeout_s,
            )
        except Exception as e:
            raise ExtractionError(f"AI extraction failed for {source_name}: {e}") from e

        records: List[RawEventRecord] = []
        scores: List[float] = []
        for event in response.events:
            if len(event.title.strip()) < MIN_TITLE_CHARS:
                continue
            confidence = event.confidence if event.confidence is not None else estimate_confidence(event)
            records.append(self._to_record(event, source_name, source_url, confidence))
            scores.append(confidence)

        overall = sum(scores) / len(scores) if scores else 0.0
        logger.debug(f"AI found {len(records)} event(s) for {source_name} (confidence {overall:.2f})")
        return AIExtractionResult(events=records, confidence=overall)

    def _build_user_prompt(self, text: str, source_name: str) -> str:
        return f"SOURCE: {source_name}\n\nCONTENT:\n{text}"

    @staticmethod
    def _to_record(
        event: ExtractedEvent,
        source_name: str,
        source_url: Optional[str],
        confidence: float,
    ) -> RawEventRecord:
        return RawEventRecord(
            title=event.title,
            source_name=source_name,
            date_text=event.start_date or event.date,
            end_date_text=event.end_date,
            time_text=event.time,
            price_text=event.cost.as_text() if event.cost else None,
            location_text=event.location,
            venue_text=event.venue,
            description_text=event.description,
            category_text=event.category[0] if event.category else None,
            detail_url=event.url,
            image_url=event.image_url,
            source_url=source_url,
            confidence=confidence,
        )
