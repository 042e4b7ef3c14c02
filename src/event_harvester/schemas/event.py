# src/event_harvester/schemas/event.py
"""
Event records flowing through the harvesting pipeline.

RawEventRecord is the output of one extraction attempt on one listing page:
raw strings only, never persisted. NormalizedEvent is the canonical,
store-ready shape produced by the normalizers and handed to the batcher.
"""

from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# ============================================================================
# ENUMS
# ============================================================================


class ExtractionMethod(str, Enum):
    """Which strategy produced a record."""

    CSS_SELECTOR = "css-selector"
    AI_AGENT = "ai-agent"
    AI_FALLBACK = "ai-fallback"

    @property
    def is_ai(self) -> bool:
        return self is not ExtractionMethod.CSS_SELECTOR


class PriceType(str, Enum):
    FREE = "free"
    FIXED = "fixed"
    VARIABLE = "variable"


# ============================================================================
# PRICE
# ============================================================================


class PriceInfo(BaseModel):
    """
    Tagged price.

    - free: amount is 0
    - fixed: amount is a number
    - variable: amount is a "min-max" range string or the raw unparsed text
    """

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    type: PriceType
    amount: Union[int, float, str] = 0
    currency: str = "USD"

    @model_validator(mode="after")
    def validate_amount_matches_type(self) -> "PriceInfo":
        if self.type == PriceType.FIXED.value and isinstance(self.amount, str):
            raise ValueError("fixed price requires a numeric amount")
        if self.type == PriceType.FREE.value and self.amount != 0:
            raise ValueError("free price must have amount 0")
        return self


# ============================================================================
# RAW RECORD
# ============================================================================


class RawEventRecord(BaseModel):
    """
    One event as extracted from a page, before any normalization.

    Only title and source_name are required. extraction_method is stamped by
    the strategy engine once it knows which step produced the record.
    """

    model_config = ConfigDict(use_enum_values=True)

    title: str = Field(..., min_length=1)
    source_name: str = Field(..., min_length=1)

    date_text: Optional[str] = None
    end_date_text: Optional[str] = None
    time_text: Optional[str] = None
    price_text: Optional[str] = None
    location_text: Optional[str] = None
    venue_text: Optional[str] = None
    description_text: Optional[str] = None
    category_text: Optional[str] = None
    detail_url: Optional[str] = None
    image_url: Optional[str] = None

    source_url: Optional[str] = None
    extraction_method: Optional[ExtractionMethod] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1)

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = " ".join(v.split())
        if not v:
            raise ValueError("title must not be blank")
        return v


# ============================================================================
# NORMALIZED EVENT
# ============================================================================


class NormalizedEvent(BaseModel):
    """
    Canonical event shape.

    start_date is always a valid ISO date; records that cannot satisfy this are
    rejected by the normalizer before they reach deduplication. confidence is
    present exactly when the extraction method is AI-based.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=True,
    )

    title: str = Field(..., min_length=1)
    start_date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$")
    end_date: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    start_time: Optional[str] = None
    price: PriceInfo = Field(default_factory=lambda: PriceInfo(type=PriceType.FREE))
    location: Optional[str] = None
    venue: Optional[str] = None
    description: Optional[str] = None
    detail_url: Optional[str] = None
    image_url: Optional[str] = None
    category: str = "Uncategorized"
    source_name: str
    source_url: Optional[str] = None
    dedup_key: str = ""
    extraction_method: ExtractionMethod
    confidence: Optional[float] = Field(default=None, ge=0, le=1)

    @model_validator(mode="after")
    def validate_confidence_for_method(self) -> "NormalizedEvent":
        method = ExtractionMethod(self.extraction_method)
        if method.is_ai and self.confidence is None:
            raise ValueError(f"confidence is required for {method.value} events")
        if not method.is_ai:
            self.confidence = None
        return self

    def to_payload(self) -> Dict[str, Any]:
        """Wire form: camelCase keys, unset fields omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
