"""
event_harvester.schemas.source

Pydantic models for per-site source descriptors and schedule buckets.

A SourceConfig is a plain value: one per site, loaded once, shared by every
crawl run. Site differences live entirely in these values (URLs, selectors,
category table), not in per-site code.
"""

from __future__ import annotations

from enum import Enum

from croniter import croniter
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_DATE_FORMATS = ("MMM DD, YYYY", "MMM DD", "YYYY-MM-DD")

# ----------------------------
# Selectors
# ----------------------------


class SelectorMap(BaseModel):
    """CSS selectors used for selector-based extraction, relative to each container."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    event_container: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    description: str | None = None
    location: str | None = None
    venue: str | None = None
    date: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    time: str | None = None
    category: str | None = None
    cost: str | None = None
    image: str | None = None
    website: str | None = None


# ----------------------------
# Source
# ----------------------------


class SourceConfig(BaseModel):
    """Static descriptor for one event-listing site."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1)
    base_url: str = Field(..., min_length=1)
    event_urls: tuple[str, ...] = Field(..., min_length=1)
    selectors: SelectorMap
    date_formats: tuple[str, ...] = DEFAULT_DATE_FORMATS
    category_mapping: dict[str, str] = Field(default_factory=dict)
    wait_for_selector: bool = True
    enabled: bool = True

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must be an http(s) URL")
        return v.rstrip("/")

    @field_validator("event_urls")
    @classmethod
    def validate_event_urls(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        for url in v:
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"event url must be an http(s) URL: {url}")
        return v

    @field_validator("category_mapping")
    @classmethod
    def lowercase_mapping_keys(cls, v: dict[str, str]) -> dict[str, str]:
        return {k.strip().lower(): cat for k, cat in v.items()}


# ----------------------------
# Schedules
# ----------------------------


class BucketName(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    frequent = "frequent"


DEFAULT_CRONS: dict[BucketName, str] = {
    BucketName.daily: "0 6 * * *",
    BucketName.weekly: "0 2 * * 0",
    BucketName.monthly: "0 3 1 * *",
    BucketName.frequent: "0 */4 * * *",
}


class ScheduleBucket(BaseModel):
    """A named cron cadence and the ordered sources it crawls."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: BucketName
    cron: str | None = None
    sources: tuple[str, ...] = ()
    timezone: str = "America/New_York"
    enabled: bool = True

    @model_validator(mode="before")
    @classmethod
    def default_cron(cls, data):
        if isinstance(data, dict) and not data.get("cron") and data.get("name"):
            try:
                data = {**data, "cron": DEFAULT_CRONS[BucketName(data["name"])]}
            except ValueError:
                pass  # unknown bucket name is reported by field validation
        return data

    @field_validator("cron")
    @classmethod
    def validate_cron(cls, v: str | None) -> str | None:
        if v is None:
            return v
        if len(v.split()) != 5:
            raise ValueError("cron expression must have 5 fields")
        if not croniter.is_valid(v):
            raise ValueError(f"invalid cron expression: {v!r}")
        return v
