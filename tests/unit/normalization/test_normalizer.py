"""
Unit tests for EventNormalizer.

Covers the full raw -> normalized mapping, rejection reasons, date ranges,
URL resolution and confidence handling.
"""

from unittest.mock import MagicMock

import pytest

from event_harvester.normalization.normalizer import (
    EventNormalizer,
    RejectReason,
    resolve_url,
)
from event_harvester.schemas.event import RawEventRecord


@pytest.fixture
def normalizer(today):
    return EventNormalizer(today=today)


# =============================================================================
# HAPPY PATH
# =============================================================================


class TestNormalize:
    """Tests for a single record."""

    def test_full_record(self, normalizer, sample_source, create_raw_record):
        raw = create_raw_record(
            title="Jazz  Night",
            time_text="7:00 PM",
            price_text="$45",
            location_text=" Blues   Alley ",
            detail_url="/events/jazz-night",
            image_url="/img/jazz.png",
            category_text="Concert",
            source_url="https://example.com/events",
        )

        outcome = normalizer.normalize(raw, sample_source)

        assert outcome.ok
        event = outcome.event
        assert event.title == "Jazz Night"
        assert event.start_date == "2024-06-15"
        assert event.start_time == "7:00pm"
        assert event.price.type == "fixed"
        assert event.price.amount == 45
        assert event.location == "Blues Alley"
        assert event.detail_url == "https://example.com/events/jazz-night"
        assert event.image_url == "https://example.com/img/jazz.png"
        assert event.category == "Music"
        assert event.extraction_method == "css-selector"
        assert event.confidence is None

    def test_dedup_key_is_set(self, normalizer, sample_source, create_raw_record):
        event = normalizer.normalize(create_raw_record(title="Poetry Slam"), sample_source).event
        assert event.dedup_key == "poetry slam::2024-06-15"

    def test_missing_price_is_free(self, normalizer, sample_source, create_raw_record):
        event = normalizer.normalize(create_raw_record(), sample_source).event
        assert event.price.type == "free"

    def test_source_category_mapping(self, normalizer, create_source, create_raw_record):
        source = create_source(category_mapping={"Live Jazz": "Jazz"})
        event = normalizer.normalize(create_raw_record(category_text="live jazz"), source).event
        assert event.category == "Jazz"

    def test_missing_category(self, normalizer, sample_source, create_raw_record):
        event = normalizer.normalize(create_raw_record(), sample_source).event
        assert event.category == "Uncategorized"

    def test_missing_title_rejects(self, normalizer, sample_source):
        raw = RawEventRecord.model_construct(title="  ", source_name="Test Source", date_text="June 15, 2024")
        outcome = normalizer.normalize(raw, sample_source)
        assert outcome.reason == RejectReason.MISSING_TITLE


class TestTimeHandling:
    """Start time rules."""

    def test_no_time_token_means_no_time(self, normalizer, sample_source, create_raw_record):
        outcome = normalizer.normalize(create_raw_record(time_text="TBA"), sample_source)
        assert outcome.ok
        assert outcome.event.start_time is None

    def test_unparseable_time_rejects(self, normalizer, sample_source, create_raw_record):
        outcome = normalizer.normalize(create_raw_record(time_text="late night"), sample_source)
        assert not outcome.ok
        assert outcome.reason == RejectReason.UNPARSEABLE_TIME

    def test_time_taken_from_date_text(self, normalizer, sample_source, create_raw_record):
        raw = create_raw_record(date_text="June 15, 2024 at 7:00 PM")
        event = normalizer.normalize(raw, sample_source).event
        assert event.start_date == "2024-06-15"
        assert event.start_time == "7:00pm"


class TestDateHandling:
    """Start and end date rules."""

    def test_missing_date_rejects(self, normalizer, sample_source, create_raw_record):
        outcome = normalizer.normalize(create_raw_record(date_text=None), sample_source)
        assert outcome.reason == RejectReason.MISSING_DATE

    def test_blank_date_rejects(self, normalizer, sample_source, create_raw_record):
        outcome = normalizer.normalize(create_raw_record(date_text="   "), sample_source)
        assert outcome.reason == RejectReason.MISSING_DATE

    def test_unparseable_date_rejects(self, normalizer, sample_source, create_raw_record):
        outcome = normalizer.normalize(create_raw_record(date_text="sometime soon"), sample_source)
        assert outcome.reason == RejectReason.UNPARSEABLE_DATE
        assert outcome.detail

    def test_range_sets_end_date(self, normalizer, sample_source, create_raw_record):
        raw = create_raw_record(date_text="June 15 - June 17, 2024")
        event = normalizer.normalize(raw, sample_source).event
        assert event.start_date == "2024-06-15"
        assert event.end_date == "2024-06-17"

    def test_explicit_end_date(self, normalizer, sample_source, create_raw_record):
        raw = create_raw_record(end_date_text="June 18, 2024")
        assert normalizer.normalize(raw, sample_source).event.end_date == "2024-06-18"

    def test_end_before_start_is_dropped(self, normalizer, sample_source, create_raw_record):
        raw = create_raw_record(end_date_text="June 1, 2024")
        assert normalizer.normalize(raw, sample_source).event.end_date is None

    def test_year_inferred_from_today(self, normalizer, sample_source, create_raw_record):
        event = normalizer.normalize(create_raw_record(date_text="Jan 5"), sample_source).event
        assert event.start_date == "2026-01-05"


class TestConfidence:
    """Confidence is present exactly for AI-extracted events."""

    def test_ai_confidence_carried(self, normalizer, sample_source, create_raw_record):
        raw = create_raw_record(extraction_method="ai-agent", confidence=0.9)
        event = normalizer.normalize(raw, sample_source).event
        assert event.extraction_method == "ai-agent"
        assert event.confidence == 0.9

    def test_ai_without_confidence_gets_zero(self, normalizer, sample_source, create_raw_record):
        raw = create_raw_record(extraction_method="ai-fallback")
        assert normalizer.normalize(raw, sample_source).event.confidence == 0.0

    def test_css_confidence_dropped(self, normalizer, sample_source, create_raw_record):
        raw = create_raw_record(extraction_method="css-selector", confidence=0.8)
        assert normalizer.normalize(raw, sample_source).event.confidence is None


# =============================================================================
# BATCH
# =============================================================================


class TestNormalizeAll:
    """Tests for normalize_all."""

    def test_rejections_are_reported_and_logged(self, normalizer, sample_source, create_raw_record):
        log = MagicMock()
        records = [
            create_raw_record(title="Good"),
            create_raw_record(title="No Date", date_text=None),
            create_raw_record(title="Bad Time", time_text="late night"),
        ]

        report = normalizer.normalize_all(records, sample_source, log=log)

        assert [e.title for e in report.events] == ["Good"]
        assert report.rejected == [
            ("No Date", RejectReason.MISSING_DATE),
            ("Bad Time", RejectReason.UNPARSEABLE_TIME),
        ]
        assert report.rejected_count == 2
        assert log.info.call_count == 2
        extra = log.info.call_args.kwargs["extra"]
        assert extra["event"] == "record_rejected"
        assert extra["payload"]["reason"] == RejectReason.UNPARSEABLE_TIME

    def test_empty_input(self, normalizer, sample_source):
        report = normalizer.normalize_all([], sample_source)
        assert report.events == []
        assert report.rejected == []


class TestResolveUrl:
    """Tests for resolve_url."""

    def test_relative(self):
        assert resolve_url("/events/1", "https://example.com") == "https://example.com/events/1"

    def test_absolute_kept(self):
        assert resolve_url("https://other.org/e", "https://example.com") == "https://other.org/e"

    @pytest.mark.parametrize("url", [None, "", "#", "javascript:void(0)", "mailto:a@b.c"])
    def test_unusable_links(self, url):
        assert resolve_url(url, "https://example.com") is None
