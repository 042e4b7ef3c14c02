"""
Pydantic models for structured LLM event extraction.

These models define the structured output schema the LLM fills when asked to
list the events found in a page's text.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator

CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}

# =============================================================================
# COST
# =============================================================================


class ExtractedCost(BaseModel):
    """Cost as described by the model."""

    type: Optional[str] = Field(default=None, description="free, fixed or variable")
    currency: Optional[str] = Field(default="USD", description="ISO currency code")
    amount: Optional[Union[float, str]] = Field(
        default=None, description="Numeric amount, or a range such as '15-30'"
    )

    def as_text(self) -> Optional[str]:
        """Render back to price text for the price normalizer."""
        if self.type and self.type.lower() == "free":
            return "Free"
        if self.amount is None or self.amount == "":
            return None
        amount = self.amount
        if isinstance(amount, float) and amount.is_integer():
            amount = int(amount)
        text = str(amount).strip()
        if not text[:1].isdigit():
            return text
        currency = (self.currency or "USD").upper()
        symbol = CURRENCY_SYMBOLS.get(currency)
        return f"{symbol}{text}" if symbol else f"{text} {currency}"


# =============================================================================
# EVENT
# =============================================================================


class ExtractedEvent(BaseModel):
    """One event found in page text."""

    title: str = Field(description="Event title")
    description: Optional[str] = Field(default=None, description="Event description")
    location: Optional[str] = Field(default=None, description="Event location or address")
    venue: Optional[str] = Field(default=None, description="Specific venue name")
    date: Optional[str] = Field(default=None, description="Date as written on the page")
    start_date: Optional[str] = Field(default=None, description="Start date in YYYY-MM-DD format")
    end_date: Optional[str] = Field(default=None, description="End date if multi-day event")
    time: Optional[str] = Field(default=None, description="Start time or time range")
    category: List[str] = Field(default_factory=list, description="Primary category first")
    cost: Optional[ExtractedCost] = None
    url: Optional[str] = Field(default=None, description="Link to the event page")
    image_url: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1, description="Confidence score")

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [c.strip() for c in v if isinstance(c, str) and c.strip()]


class ExtractedEventList(BaseModel):
    """All events found in one page."""

    events: List[ExtractedEvent] = Field(default_factory=list)
