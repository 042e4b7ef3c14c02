"""
Shared pytest fixtures for the event harvester test suite.

Provides factory fixtures for raw records, normalized events and source
configurations, plus in-memory collaborators for scheduler tests.
"""

from datetime import date
from typing import List, Optional

import pytest

from event_harvester.configs.settings import Settings
from event_harvester.ingestion.adapters.base_adapter import PageAutomation, PageHandle
from event_harvester.runtime.errors import NavigationError
from event_harvester.schemas.event import ExtractionMethod, NormalizedEvent, RawEventRecord
from event_harvester.schemas.source import SourceConfig

TODAY = date(2025, 11, 1)

LISTING_HTML = """
<html><body>
  <div class="event-item">
    <h3 class="title">Jazz Night</h3>
    <span class="date">June 15, 2024</span>
    <span class="time">7:00 PM</span>
    <span class="cost">$45</span>
    <span class="location">Blues Alley</span>
    <a class="more" href="/events/jazz-night">Details</a>
    <img src="/img/jazz.png">
  </div>
  <div class="event-item">
    <h3 class="title">Poetry Slam</h3>
    <span class="date">June 20, 2024</span>
    <span class="cost">Free</span>
  </div>
  <div class="event-item"><span class="date">June 21, 2024</span></div>
</body></html>
"""


@pytest.fixture
def today():
    """Fixed reference date used for year inference."""
    return TODAY


@pytest.fixture
def create_source():
    """
    Return a function that creates SourceConfig objects with sensible defaults.

    Example:
        source = create_source(name="Test Site", category_mapping={"jazz": "Music"})
    """

    def _create_source(name: str = "Test Source", **kwargs) -> SourceConfig:
        defaults = {
            "name": name,
            "base_url": "https://example.com",
            "event_urls": ["https://example.com/events"],
            "selectors": {
                "event_container": ".event-item",
                "title": ".title",
                "date": ".date",
                "time": ".time",
                "cost": ".cost",
                "location": ".location",
                "website": "a.more",
                "image": "img",
            },
        }
        defaults.update(kwargs)
        return SourceConfig.model_validate(defaults)

    return _create_source


@pytest.fixture
def sample_source(create_source):
    return create_source()


@pytest.fixture
def create_raw_record():
    """Return a function that creates RawEventRecord objects."""

    def _create_raw_record(
        title: str = "Test Event",
        source_name: str = "Test Source",
        date_text: Optional[str] = "June 15, 2024",
        **kwargs,
    ) -> RawEventRecord:
        return RawEventRecord(title=title, source_name=source_name, date_text=date_text, **kwargs)

    return _create_raw_record


@pytest.fixture
def create_event():
    """
    Return a function that creates NormalizedEvent objects with sensible defaults.

    The dedup key is left empty unless given, as the dedup engine computes it
    on demand.
    """

    def _create_event(
        title: str = "Test Event",
        start_date: str = "2024-06-15",
        **kwargs,
    ) -> NormalizedEvent:
        defaults = {
            "title": title,
            "start_date": start_date,
            "source_name": "Test Source",
            "extraction_method": ExtractionMethod.CSS_SELECTOR,
        }
        defaults.update(kwargs)
        return NormalizedEvent(**defaults)

    return _create_event


@pytest.fixture
def test_settings():
    """Settings isolated from the environment's .env file, with no delays."""
    return Settings(
        _env_file=None,
        AI_ENABLED=False,
        REQUEST_DELAY_S=0,
        NAVIGATION_RETRY_DELAY_S=0,
        DATABASE_URL=None,
        WORKFLOW_ENDPOINT=None,
    )


class StaticPageAutomation(PageAutomation):
    """Serves fixed HTML per URL; unknown URLs fail to load."""

    def __init__(self, pages: dict):
        self.pages = pages
        self.visited: List[str] = []

    def navigate(self, url, wait_for=None, timeout_s=30.0) -> PageHandle:
        self.visited.append(url)
        if url not in self.pages:
            raise NavigationError(url, "HTTP 404")
        return PageHandle(url=url, html=self.pages[url], final_url=url, status=200)


@pytest.fixture
def static_automation():
    """Return a factory for StaticPageAutomation."""
    return StaticPageAutomation


@pytest.fixture
def listing_html():
    """Listing page with two complete events and one container without a title."""
    return LISTING_HTML
