"""
Unit tests for the base_adapter module.

Tests for PageHandle, extract_with_selectors, PageAutomation and SourceAdapter.
"""

from unittest.mock import MagicMock

import pytest

from event_harvester.ingestion.adapters.base_adapter import (
    DEFAULT_NAVIGATION_POLICY,
    PageAutomation,
    PageHandle,
    SourceAdapter,
    extract_with_selectors,
)
from event_harvester.runtime.errors import NavigationError
from event_harvester.runtime.resilience import Deadline, RetryPolicy


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def mock_automation():
    automation = MagicMock(spec=PageAutomation)
    automation.navigate.return_value = PageHandle(url="https://example.com/events", html="<html></html>")
    return automation


@pytest.fixture
def fast_policy():
    return RetryPolicy(max_attempts=3, backoff_mode="fixed", base_delay_s=5.0)


# =============================================================================
# TEST CLASSES
# =============================================================================


class TestPageHandle:
    """Tests for PageHandle."""

    def test_text_strips_scripts(self):
        page = PageHandle(
            url="u",
            html="<html><script>var x=1;</script><style>p{}</style><p>Jazz   Night</p></html>",
        )
        assert page.text() == "Jazz Night"

    def test_text_truncated(self):
        page = PageHandle(url="u", html="<p>" + "a" * 100 + "</p>")
        assert len(page.text(max_chars=10)) == 10


class TestExtractWithSelectors:
    """Tests for selector-based extraction."""

    def test_listing(self, sample_source, listing_html):
        records = extract_with_selectors(listing_html, sample_source, "https://example.com/events")

        assert [r.title for r in records] == ["Jazz Night", "Poetry Slam"]
        jazz = records[0]
        assert jazz.date_text == "June 15, 2024"
        assert jazz.time_text == "7:00 PM"
        assert jazz.price_text == "$45"
        assert jazz.location_text == "Blues Alley"
        assert jazz.detail_url == "/events/jazz-night"
        assert jazz.image_url == "/img/jazz.png"
        assert jazz.source_name == "Test Source"
        assert jazz.source_url == "https://example.com/events"
        assert jazz.extraction_method is None

    def test_missing_fields_are_none(self, sample_source, listing_html):
        slam = extract_with_selectors(listing_html, sample_source)[1]
        assert slam.time_text is None
        assert slam.detail_url is None
        assert slam.price_text == "Free"

    def test_datetime_attribute_fallback(self, create_source):
        source = create_source(
            selectors={"event_container": "article", "title": "h2", "start_date": "time.start", "end_date": "time.end"}
        )
        html = (
            '<article><h2>Gala</h2><time class="start" datetime="2024-06-15"></time>'
            '<time class="end" datetime="2024-06-16"></time></article>'
        )
        record = extract_with_selectors(html, source)[0]
        assert record.date_text == "2024-06-15"
        assert record.end_date_text == "2024-06-16"

    def test_start_date_selector_preferred(self, create_source):
        source = create_source(
            selectors={"event_container": "li", "title": "b", "date": ".d", "start_date": ".sd"}
        )
        html = '<ul><li><b>Fair</b><span class="d">whenever</span><span class="sd">June 1, 2024</span></li></ul>'
        assert extract_with_selectors(html, source)[0].date_text == "June 1, 2024"

    def test_comma_selector_first_match(self, create_source):
        source = create_source(selectors={"event_container": ".e", "title": "h2, h3"})
        html = '<div class="e"><h3>Second</h3><h2>First</h2></div>'
        assert extract_with_selectors(html, source)[0].title == "Second"

    def test_no_containers(self, sample_source):
        assert extract_with_selectors("<html><p>Nothing</p></html>", sample_source) == []


class TestPageAutomation:
    """Tests for PageAutomation defaults."""

    def test_extract_via_selectors_uses_html(self, static_automation, sample_source, listing_html):
        automation = static_automation({"https://example.com/events": listing_html})
        page = automation.navigate("https://example.com/events")
        records = automation.extract_via_selectors(page, sample_source)
        assert len(records) == 2

    def test_context_manager_closes(self, static_automation):
        automation = static_automation({})
        automation.close = MagicMock()
        with automation:
            pass
        automation.close.assert_called_once()


class TestSourceAdapter:
    """Tests for SourceAdapter navigation."""

    def test_properties(self, sample_source, mock_automation):
        adapter = SourceAdapter(sample_source, mock_automation)
        assert adapter.name == "Test Source"
        assert adapter.event_urls == ["https://example.com/events"]
        assert adapter.policy == DEFAULT_NAVIGATION_POLICY

    def test_waits_for_container(self, sample_source, mock_automation):
        SourceAdapter(sample_source, mock_automation).fetch_page("https://example.com/events")
        mock_automation.navigate.assert_called_once_with(
            "https://example.com/events", wait_for=".event-item", timeout_s=30.0
        )

    def test_no_wait_when_disabled(self, create_source, mock_automation):
        source = create_source(wait_for_selector=False)
        SourceAdapter(source, mock_automation).fetch_page("https://example.com/events")
        assert mock_automation.navigate.call_args.kwargs["wait_for"] is None

    def test_retries_with_fixed_delay(self, sample_source, mock_automation, fast_policy):
        page = PageHandle(url="u", html="")
        mock_automation.navigate.side_effect = [NavigationError("u", "timeout"), NavigationError("u", "timeout"), page]
        sleep = MagicMock()

        result = SourceAdapter(sample_source, mock_automation, policy=fast_policy, sleep=sleep).fetch_page("u")

        assert result is page
        assert mock_automation.navigate.call_count == 3
        assert [c.args[0] for c in sleep.call_args_list] == [5.0, 5.0]

    def test_gives_up_after_three_attempts(self, sample_source, mock_automation, fast_policy):
        mock_automation.navigate.side_effect = NavigationError("u", "HTTP 500")
        adapter = SourceAdapter(sample_source, mock_automation, policy=fast_policy, sleep=MagicMock())

        with pytest.raises(NavigationError):
            adapter.fetch_page("u")
        assert mock_automation.navigate.call_count == 3

    def test_unexpected_errors_wrapped(self, sample_source, mock_automation, fast_policy):
        mock_automation.navigate.side_effect = [RuntimeError("socket closed"), PageHandle(url="u", html="")]
        adapter = SourceAdapter(sample_source, mock_automation, policy=fast_policy, sleep=MagicMock())
        assert adapter.fetch_page("u").url == "u"

    def test_expired_deadline(self, sample_source, mock_automation):
        adapter = SourceAdapter(sample_source, mock_automation, sleep=MagicMock())
        with pytest.raises(NavigationError, match="run deadline reached"):
            adapter.fetch_page("u", deadline=Deadline(0))
        mock_automation.navigate.assert_not_called()

    def test_timeout_clipped_to_deadline(self, sample_source, mock_automation):
        clock = MagicMock(return_value=0.0)
        deadline = Deadline(12.0, clock=clock)
        SourceAdapter(sample_source, mock_automation).fetch_page("u", deadline=deadline)
        assert mock_automation.navigate.call_args.kwargs["timeout_s"] == 12.0

    def test_extract_delegates_to_automation(self, sample_source, mock_automation):
        mock_automation.extract_via_selectors.return_value = []
        page = PageHandle(url="u", html="")
        assert SourceAdapter(sample_source, mock_automation).extract(page) == []
        mock_automation.extract_via_selectors.assert_called_once_with(page, sample_source)
