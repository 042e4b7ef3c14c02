"""
Date normalization.

Turns free-text listing dates ("June 15, 2024", "Wed, Nov 12", "FRIDAY, 10/24",
"tomorrow", "Feb 1 - Feb 3") into ISO ``YYYY-MM-DD`` strings.

Year inference: when the text carries no year, the current year is assumed;
if that puts the date more than six calendar months before today, the date
rolls forward one year. infer_year() is the only place this happens, and every
year-less matcher (including both ends of a range) goes through it.
"""

import calendar
import re
from datetime import date, datetime, timedelta
from typing import NamedTuple, Optional, Sequence
from zoneinfo import ZoneInfo

from event_harvester.normalization.parse_result import (
    NO_MATCH,
    Matcher,
    Parsed,
    ParseResult,
    Unparsed,
    run_matchers,
)

DEFAULT_TIMEZONE = "America/New_York"
ROLLOVER_MONTHS = 6

# =============================================================================
# VOCABULARY
# =============================================================================

MONTHS = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sept": 9, "sep": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}

WEEKDAYS = {
    "monday": 0, "mon": 0,
    "tuesday": 1, "tues": 1, "tue": 1,
    "wednesday": 2, "wed": 2,
    "thursday": 3, "thurs": 3, "thur": 3, "thu": 3,
    "friday": 4, "fri": 4,
    "saturday": 5, "sat": 5,
    "sunday": 6, "sun": 6,
}

_MONTH = (
    r"\b(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)\b\.?"
)
_WEEKDAY = (
    r"\b(mon(?:day)?|tue(?:s(?:day)?)?|wed(?:nesday)?|thu(?:r(?:s(?:day)?)?)?"
    r"|fri(?:day)?|sat(?:urday)?|sun(?:day)?)\b\.?"
)
_DAY = r"(\d{1,2})(?:st|nd|rd|th)?"
_SEP = r"(?:-|–|—|\bto\b|\bthrough\b|\bthru\b)"

_ISO_RE = re.compile(r"(?<!\d)(\d{4})-(\d{2})-(\d{2})(?!\d)")
_MONTH_DAY_YEAR_RE = re.compile(_MONTH + r"\s*" + _DAY + r"(?!\d),?\s+(\d{4})(?!\d)", re.I)
_DAY_MONTH_YEAR_RE = re.compile(r"(?<!\d)" + _DAY + r"\s+(?:of\s+)?" + _MONTH + r",?\s+(\d{4})(?!\d)", re.I)
_NUMERIC_MDY_RE = re.compile(r"(?<![\d/])(\d{1,2})/(\d{1,2})/(\d{4}|\d{2})(?![\d/])")
_MONTH_DAY_RE = re.compile(r"^" + _MONTH + r"\s*" + _DAY + r"(?![\d:])(?!,?\s*\d{4})", re.I)
_NUMERIC_MD_RE = re.compile(r"^(\d{1,2})/(\d{1,2})(?![\d/])")
_WEEKDAY_PREFIX_RE = re.compile(r"^" + _WEEKDAY + r",?\s+", re.I)
_RELATIVE_RE = re.compile(r"^(?:(today|tonight|tomorrow)\b|(?:this\s+)?" + _WEEKDAY + r")", re.I)
_EMBEDDED_MONTH_DAY_RE = re.compile(_MONTH + r"\s*" + _DAY + r"(?![\d:])(?!,?\s*\d{4})", re.I)
_RANGE_RE = re.compile(
    _MONTH + r"\s*" + _DAY + r"(?:,?\s*(\d{4}))?\s*" + _SEP + r"\s*(?:" + _MONTH + r"\s*)?"
    + _DAY + r"(?![\d:])(?!\s*[ap]\.?m\b)(?:,?\s*(\d{4}))?",
    re.I,
)
_ISO_RANGE_RE = re.compile(
    r"(?<!\d)(\d{4}-\d{2}-\d{2})\s*" + _SEP + r"\s*(\d{4}-\d{2}-\d{2})(?!\d)", re.I
)
_ENDS_WITH_SEP_RE = re.compile(_SEP + r"\s*$", re.I)


class DateRange(NamedTuple):
    start: str
    end: str


# =============================================================================
# HELPERS
# =============================================================================


def local_today(tz: str = DEFAULT_TIMEZONE) -> date:
    """Today's date in the listing sites' timezone."""
    return datetime.now(ZoneInfo(tz)).date()


def subtract_months(d: date, months: int) -> date:
    """Calendar-month subtraction, clamping the day to the target month's length."""
    total = d.year * 12 + (d.month - 1) - months
    year, month = divmod(total, 12)
    month += 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def infer_year(month: int, day: int, today: date) -> Optional[date]:
    """
    Resolve a year-less month/day against today.

    Uses the current year unless that date falls more than six calendar months
    before today, in which case the next year is used. Returns None when the
    month/day does not exist in the chosen year (e.g. Feb 29 in a common year).
    """
    try:
        candidate = date(today.year, month, day)
    except ValueError:
        candidate = None

    if candidate is not None and candidate >= subtract_months(today, ROLLOVER_MONTHS):
        return candidate

    try:
        return date(today.year + 1, month, day)
    except ValueError:
        return None


def _clean(text: str) -> str:
    return " ".join(str(text).replace(" ", " ").split()).strip(" ,.;")


def _month(token: str) -> int:
    return MONTHS[token.lower().rstrip(".")]


def _build(year: int, month: int, day: int) -> "ParseResult[date]":
    try:
        return Parsed(date(year, month, day))
    except ValueError:
        return Unparsed(f"invalid calendar date {year}-{month:02d}-{day:02d}")


def _infer(month: int, day: int, today: date) -> "ParseResult[date]":
    if not 1 <= month <= 12:
        return Unparsed(f"invalid month {month}")
    resolved = infer_year(month, day, today)
    if resolved is None:
        return Unparsed(f"invalid calendar date --{month:02d}-{day:02d}")
    return Parsed(resolved)


def _is_range_end(text: str, start: int) -> bool:
    return bool(_ENDS_WITH_SEP_RE.search(text[:start]))


# =============================================================================
# MATCHERS
# =============================================================================


def _match_iso(text: str, today: date) -> "ParseResult[date]":
    m = _ISO_RE.search(text)
    if not m:
        return NO_MATCH
    return _build(int(m.group(1)), int(m.group(2)), int(m.group(3)))


def _match_month_day_year(text: str, today: date) -> "ParseResult[date]":
    for m in _MONTH_DAY_YEAR_RE.finditer(text):
        if _is_range_end(text, m.start()):
            continue
        return _build(int(m.group(3)), _month(m.group(1)), int(m.group(2)))
    return NO_MATCH


def _match_day_month_year(text: str, today: date) -> "ParseResult[date]":
    m = _DAY_MONTH_YEAR_RE.search(text)
    if not m:
        return NO_MATCH
    return _build(int(m.group(3)), _month(m.group(2)), int(m.group(1)))


def _match_numeric_mdy(text: str, today: date) -> "ParseResult[date]":
    m = _NUMERIC_MDY_RE.search(text)
    if not m:
        return NO_MATCH
    year = int(m.group(3))
    if year < 100:
        year += 2000
    return _build(year, int(m.group(1)), int(m.group(2)))


def _match_month_day(text: str, today: date) -> "ParseResult[date]":
    m = _MONTH_DAY_RE.match(text)
    if not m or re.match(r"\s*" + _SEP, text[m.end():], re.I):
        return NO_MATCH
    return _infer(_month(m.group(1)), int(m.group(2)), today)


def _match_numeric_month_day(text: str, today: date) -> "ParseResult[date]":
    m = _NUMERIC_MD_RE.match(text)
    if not m:
        return NO_MATCH
    return _infer(int(m.group(1)), int(m.group(2)), today)


def _match_weekday_month_day(text: str, today: date) -> "ParseResult[date]":
    m = _WEEKDAY_PREFIX_RE.match(text)
    if not m:
        return NO_MATCH
    rest = text[m.end():]
    for step in (_match_month_day_year, _match_month_day, _match_numeric_month_day):
        result = step(rest, today)
        if result is not NO_MATCH:
            return result
    return NO_MATCH


def _match_relative(text: str, today: date) -> "ParseResult[date]":
    m = _RELATIVE_RE.match(text)
    if not m:
        return NO_MATCH
    token = (m.group(1) or m.group(2)).lower().rstrip(".")
    if token in ("today", "tonight"):
        return Parsed(today)
    if token == "tomorrow":
        return Parsed(today + timedelta(days=1))
    days_ahead = WEEKDAYS[token] - today.weekday()
    if days_ahead <= 0:
        days_ahead += 7
    return Parsed(today + timedelta(days=days_ahead))


def _match_range_start(text: str, today: date) -> "ParseResult[date]":
    result = _parse_range(text, today)
    if isinstance(result, Parsed):
        return Parsed(result.value[0])
    return result


def _match_embedded_month_day(text: str, today: date) -> "ParseResult[date]":
    for m in _EMBEDDED_MONTH_DAY_RE.finditer(text):
        if _is_range_end(text, m.start()):
            continue
        return _infer(_month(m.group(1)), int(m.group(2)), today)
    return NO_MATCH


DATE_MATCHERS = (
    Matcher("iso", _match_iso),
    Matcher("month_day_year", _match_month_day_year),
    Matcher("day_month_year", _match_day_month_year),
    Matcher("numeric_month_day_year", _match_numeric_mdy),
    Matcher("month_day", _match_month_day),
    Matcher("numeric_month_day", _match_numeric_month_day),
    Matcher("weekday_month_day", _match_weekday_month_day),
    Matcher("relative", _match_relative),
    Matcher("range", _match_range_start),
    Matcher("embedded_month_day", _match_embedded_month_day),
)


# =============================================================================
# RANGES
# =============================================================================


def _parse_range(text: str, today: date) -> "ParseResult[tuple]":
    m = _ISO_RANGE_RE.search(text)
    if m:
        start, end = (_match_iso(g, today) for g in m.groups())
        if isinstance(start, Parsed) and isinstance(end, Parsed):
            return Parsed(tuple(sorted((start.value, end.value))))
        return Unparsed("invalid ISO range endpoint")

    m = _RANGE_RE.search(text)
    if not m:
        return NO_MATCH

    m1, d1, y1, m2_token, d2, y2 = m.groups()
    month1 = _month(m1)
    month2 = _month(m2_token) if m2_token else month1
    day1, day2 = int(d1), int(d2)

    if y1 or y2:
        start_year = int(y1 or y2)
        end_year = int(y2 or y1)
        start = _build(start_year, month1, day1)
        end = _build(end_year, month2, day2)
        if isinstance(start, Parsed) and isinstance(end, Parsed) and not y1:
            # "Dec 28 - Jan 3, 2025": the trailing year belongs to the end
            if start.value > end.value:
                start = _build(start_year - 1, month1, day1)
    else:
        start = _infer(month1, day1, today)
        end = _infer(month2, day2, today)

    if isinstance(start, Unparsed):
        return start
    if isinstance(end, Unparsed):
        return end

    lo, hi = start.value, end.value
    if lo > hi:
        lo, hi = hi, lo
    return Parsed((lo, hi))


# =============================================================================
# HINT FORMATS
# =============================================================================

_HINT_TOKENS = (
    ("YYYY", "%Y"),
    ("YY", "%y"),
    ("MMMM", "%B"),
    ("MMM", "%b"),
    ("MM", "%m"),
    ("M", "%m"),
    ("dddd", "%A"),
    ("ddd", "%a"),
    ("DD", "%d"),
    ("D", "%d"),
)


def hint_to_strptime(hint: str) -> str:
    """Translate a moment-style pattern such as ``MMM DD, YYYY`` into strptime syntax."""
    out = []
    i = 0
    while i < len(hint):
        for token, directive in _HINT_TOKENS:
            if hint.startswith(token, i):
                out.append(directive)
                i += len(token)
                break
        else:
            ch = hint[i]
            out.append("%%" if ch == "%" else ch)
            i += 1
    return "".join(out)


def _parse_with_hints(text: str, hints: Sequence[str], today: date) -> "ParseResult[date]":
    for hint in hints:
        fmt = hint_to_strptime(hint)
        has_year = "%Y" in fmt or "%y" in fmt
        try:
            if has_year:
                return Parsed(datetime.strptime(text, fmt).date(), f"hint:{hint}")
            # 2000 is a leap year, so Feb 29 survives until infer_year decides
            parsed = datetime.strptime(f"{text} 2000", f"{fmt} %Y").date()
        except ValueError:
            continue
        result = _infer(parsed.month, parsed.day, today)
        if isinstance(result, Parsed):
            return Parsed(result.value, f"hint:{hint}")
        return result
    return NO_MATCH


# =============================================================================
# PUBLIC API
# =============================================================================


def parse_date_result(
    text: Optional[str],
    hint_formats: Optional[Sequence[str]] = None,
    today: Optional[date] = None,
) -> "ParseResult[date]":
    """Tagged variant of parse_date, for callers that want the rejection reason."""
    if text is None or not str(text).strip():
        return Unparsed("empty date text")
    today = today or local_today()
    cleaned = _clean(text)

    result = run_matchers(DATE_MATCHERS, cleaned, today)
    if isinstance(result, Parsed) or not hint_formats:
        return result

    hinted = _parse_with_hints(cleaned, hint_formats, today)
    if isinstance(hinted, Parsed):
        return hinted
    return result


def parse_date(
    text: Optional[str],
    hint_formats: Optional[Sequence[str]] = None,
    today: Optional[date] = None,
) -> Optional[str]:
    """
    Parse free text into an ISO date string.

    Args:
        text: Raw date text from a listing.
        hint_formats: Source-specific moment-style patterns, tried last.
        today: Reference date for year inference and relative tokens.

    Returns:
        ``YYYY-MM-DD`` or None when nothing matched. For ranges, the start date.
    """
    result = parse_date_result(text, hint_formats, today)
    if isinstance(result, Parsed):
        return result.value.isoformat()
    return None


def parse_date_range(text: Optional[str], today: Optional[date] = None) -> Optional[DateRange]:
    """
    Parse ``Month D - Month D`` style ranges (also ``Month D-D`` and ISO pairs).

    Each end gets year inference independently; the result always has
    start <= end, swapping reversed input rather than failing.
    """
    if text is None or not str(text).strip():
        return None
    today = today or local_today()
    result = _parse_range(_clean(text), today)
    if not isinstance(result, Parsed):
        return None
    start, end = result.value
    return DateRange(start.isoformat(), end.isoformat())
