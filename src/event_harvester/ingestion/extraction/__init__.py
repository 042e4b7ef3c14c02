from event_harvester.ingestion.extraction.ai_extractor import (
    AIEventExtractor,
    AIExtractionResult,
    AIExtractor,
    estimate_confidence,
)
from event_harvester.ingestion.extraction.llm_client import LangChainLLMClient, create_llm_client
from event_harvester.ingestion.extraction.strategy import ExtractionReport, ExtractionStrategyEngine

__all__ = [
    "AIEventExtractor",
    "AIExtractionResult",
    "AIExtractor",
    "ExtractionReport",
    "ExtractionStrategyEngine",
    "LangChainLLMClient",
    "create_llm_client",
    "estimate_confidence",
]
