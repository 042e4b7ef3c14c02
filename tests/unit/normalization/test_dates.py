"""
Unit tests for the date normalizer.

All tests use an injected reference date of 2025-11-01 (a Saturday) so year
inference is deterministic.
"""

from datetime import date

import pytest

from event_harvester.normalization.dates import (
    DATE_MATCHERS,
    DateRange,
    hint_to_strptime,
    infer_year,
    parse_date,
    parse_date_range,
    parse_date_result,
    subtract_months,
)
from event_harvester.normalization.parse_result import Parsed, Unparsed

TODAY = date(2025, 11, 1)


# =============================================================================
# YEAR INFERENCE
# =============================================================================


class TestInferYear:
    """Tests for the year-less date rule."""

    def test_future_date_keeps_current_year(self):
        assert infer_year(11, 20, TODAY) == date(2025, 11, 20)

    def test_recent_past_keeps_current_year(self):
        """A date less than six months back stays in the current year."""
        assert infer_year(6, 15, TODAY) == date(2025, 6, 15)

    def test_six_month_boundary_is_inclusive(self):
        assert infer_year(5, 1, TODAY) == date(2025, 5, 1)

    def test_older_than_six_months_rolls_forward(self):
        assert infer_year(1, 5, TODAY) == date(2026, 1, 5)
        assert infer_year(4, 30, TODAY) == date(2026, 4, 30)

    def test_invalid_day_returns_none(self):
        assert infer_year(2, 30, TODAY) is None

    def test_feb_29_resolves_to_leap_year(self):
        assert infer_year(2, 29, date(2027, 11, 1)) == date(2028, 2, 29)

    def test_subtract_months_clamps_day(self):
        assert subtract_months(date(2025, 8, 31), 6) == date(2025, 2, 28)


# =============================================================================
# SINGLE DATES
# =============================================================================


class TestParseDate:
    """Tests for parse_date over the supported formats."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("2024-06-15", "2024-06-15"),
            ("June 15, 2024", "2024-06-15"),
            ("Jun 15 2024", "2024-06-15"),
            ("15 June 2024", "2024-06-15"),
            ("6/15/2024", "2024-06-15"),
            ("Saturday, June 15, 2024", "2024-06-15"),
        ],
    )
    def test_explicit_year_formats(self, text, expected):
        assert parse_date(text, today=TODAY) == expected

    def test_month_day_rolls_into_next_year(self):
        """Jan 5 seen on 2025-11-01 is more than six months back, so it means 2026."""
        assert parse_date("Jan 5", today=TODAY) == "2026-01-05"

    def test_month_day_current_year(self):
        assert parse_date("Nov 20", today=TODAY) == "2025-11-20"

    def test_ordinal_suffix(self):
        assert parse_date("December 3rd", today=TODAY) == "2025-12-03"

    def test_weekday_qualified_month_day(self):
        assert parse_date("Saturday, Nov 8", today=TODAY) == "2025-11-08"

    def test_relative_tokens(self):
        assert parse_date("Today", today=TODAY) == "2025-11-01"
        assert parse_date("Tonight", today=TODAY) == "2025-11-01"
        assert parse_date("Tomorrow", today=TODAY) == "2025-11-02"

    def test_bare_weekday_is_next_occurrence(self):
        """A weekday name never means today, even when today is that weekday."""
        assert parse_date("Monday", today=TODAY) == "2025-11-03"
        assert parse_date("Saturday", today=TODAY) == "2025-11-08"

    def test_range_returns_start(self):
        assert parse_date("June 15 - June 17, 2024", today=TODAY) == "2024-06-15"

    def test_embedded_month_day(self):
        assert parse_date("Opening night: Nov 14", today=TODAY) == "2025-11-14"

    def test_unparseable_returns_none(self):
        assert parse_date("coming soon", today=TODAY) is None

    def test_empty_returns_none(self):
        assert parse_date("", today=TODAY) is None
        assert parse_date(None, today=TODAY) is None

    def test_invalid_calendar_date(self):
        result = parse_date_result("February 30, 2024", today=TODAY)
        assert isinstance(result, Unparsed)
        assert "invalid calendar date" in result.reason


class TestHintFormats:
    """Tests for source-specific date hints."""

    def test_hint_translation(self):
        assert hint_to_strptime("MMM DD, YYYY") == "%b %d, %Y"
        assert hint_to_strptime("YYYY-MM-DD") == "%Y-%m-%d"
        assert hint_to_strptime("DD.MM.YYYY") == "%d.%m.%Y"

    def test_hint_parses_format_builtin_matchers_miss(self):
        assert parse_date("15.06.2024", ["DD.MM.YYYY"], today=TODAY) == "2024-06-15"

    def test_yearless_hint_uses_year_inference(self):
        assert parse_date("05.01", ["DD.MM"], today=TODAY) == "2026-01-05"

    def test_builtin_matchers_win_over_hints(self):
        result = parse_date_result("2024-06-15", ["DD.MM.YYYY"], today=TODAY)
        assert isinstance(result, Parsed)
        assert result.matcher == "iso"


class TestMatcherOrder:
    """The matcher tuple is the priority order."""

    def test_order(self):
        names = [m.name for m in DATE_MATCHERS]
        assert names[0] == "iso"
        assert names.index("month_day_year") < names.index("month_day")
        assert names.index("month_day") < names.index("weekday_month_day")
        assert names.index("weekday_month_day") < names.index("relative")
        assert names.index("relative") < names.index("range")

    def test_matcher_name_recorded(self):
        result = parse_date_result("Jan 5", today=TODAY)
        assert result == Parsed(date(2026, 1, 5), "month_day")


# =============================================================================
# RANGES
# =============================================================================


class TestParseDateRange:
    """Tests for parse_date_range."""

    def test_same_month_range(self):
        assert parse_date_range("June 15-17, 2024", TODAY) == DateRange("2024-06-15", "2024-06-17")

    def test_cross_month_range(self):
        assert parse_date_range("Nov 28 - Dec 2", TODAY) == DateRange("2025-11-28", "2025-12-02")

    def test_reversed_range_is_sorted(self):
        """Each end is inferred on its own, then the pair is ordered."""
        result = parse_date_range("February 1 - January 30", TODAY)
        assert result == DateRange("2026-01-30", "2026-02-01")
        assert result.start <= result.end

    def test_trailing_year_belongs_to_end(self):
        assert parse_date_range("Dec 28 - Jan 3, 2025", TODAY) == DateRange("2024-12-28", "2025-01-03")

    def test_iso_pair(self):
        assert parse_date_range("2024-06-17 to 2024-06-15", TODAY) == DateRange("2024-06-15", "2024-06-17")

    def test_single_date_is_not_a_range(self):
        assert parse_date_range("June 15, 2024", TODAY) is None

    def test_empty(self):
        assert parse_date_range(None, TODAY) is None
