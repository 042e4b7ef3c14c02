"""
Time normalization.

Canonical output is lowercase 12-hour without spaces: ``7pm``, ``7:30pm``,
``7pm-11pm``. The keyword ``sunset`` is passed through as a valid value.
"""

import re
from typing import Optional

from event_harvester.normalization.parse_result import (
    NO_MATCH,
    Matcher,
    Parsed,
    ParseResult,
    Unparsed,
    run_matchers,
)

SUNSET = "sunset"

_RANGE_SEP = r"\s*(?:-|to|until|til)\s*"
_H = r"(?<![\d:])(\d{1,2})"
_MM = r"(?::([0-5]\d))?"
_SUFFIX = r"\s*(am|pm)\b"

_SUNSET_RE = re.compile(r"\bsunset\b")
_SUFFIXED_RANGE_RE = re.compile(_H + _MM + _SUFFIX + _RANGE_SEP + _H + _MM + _SUFFIX)
_SHARED_SUFFIX_RANGE_RE = re.compile(_H + _MM + _RANGE_SEP + _H + _MM + _SUFFIX)
_RANGE_24H_RE = re.compile(
    r"(?<![\d:])([01]?\d|2[0-3]):([0-5]\d)(?!\s*[ap]m)" + _RANGE_SEP
    + r"([01]?\d|2[0-3]):([0-5]\d)(?![\d:])(?!\s*[ap]m)"
)
_SINGLE_12H_RE = re.compile(_H + _MM + _SUFFIX)
_SINGLE_24H_RE = re.compile(r"(?<![\d:])([01]?\d|2[0-3]):([0-5]\d)(?![\d:])(?!\s*[ap]m)")


def _clean(text: str) -> str:
    s = " ".join(str(text).lower().split())
    s = re.sub(r"\b([ap])\.\s*m\.?", r"\1m", s)
    s = s.replace("–", "-").replace("—", "-")
    s = re.sub(r"\bnoon\b", "12pm", s)
    s = re.sub(r"\bmidnight\b", "12am", s)
    return s


def _fmt_12h(hour: str, minute: Optional[str], suffix: str) -> "ParseResult[str]":
    h = int(hour)
    if not 1 <= h <= 12:
        return Unparsed(f"hour {h} out of range for {suffix}")
    return Parsed(f"{h}:{minute}{suffix}" if minute else f"{h}{suffix}")


def _fmt_24h(hour: str, minute: str) -> str:
    h = int(hour)
    suffix = "am" if h < 12 else "pm"
    h12 = h % 12 or 12
    return f"{h12}:{minute}{suffix}"


def _join(start: "ParseResult[str]", end: "ParseResult[str]") -> "ParseResult[str]":
    if isinstance(start, Unparsed):
        return start
    if isinstance(end, Unparsed):
        return end
    return Parsed(f"{start.value}-{end.value}")


# =============================================================================
# MATCHERS
# =============================================================================


def _match_sunset(text: str) -> "ParseResult[str]":
    return Parsed(SUNSET) if _SUNSET_RE.search(text) else NO_MATCH


def _match_suffixed_range(text: str) -> "ParseResult[str]":
    m = _SUFFIXED_RANGE_RE.search(text)
    if not m:
        return NO_MATCH
    h1, m1, s1, h2, m2, s2 = m.groups()
    return _join(_fmt_12h(h1, m1, s1), _fmt_12h(h2, m2, s2))


def _match_shared_suffix_range(text: str) -> "ParseResult[str]":
    m = _SHARED_SUFFIX_RANGE_RE.search(text)
    if not m:
        return NO_MATCH
    h1, m1, h2, m2, suffix = m.groups()
    return _join(_fmt_12h(h1, m1, suffix), _fmt_12h(h2, m2, suffix))


def _match_range_24h(text: str) -> "ParseResult[str]":
    m = _RANGE_24H_RE.search(text)
    if not m:
        return NO_MATCH
    h1, m1, h2, m2 = m.groups()
    return Parsed(f"{_fmt_24h(h1, m1)}-{_fmt_24h(h2, m2)}")


def _match_single_12h(text: str) -> "ParseResult[str]":
    m = _SINGLE_12H_RE.search(text)
    if not m:
        return NO_MATCH
    return _fmt_12h(*m.groups())


def _match_single_24h(text: str) -> "ParseResult[str]":
    m = _SINGLE_24H_RE.search(text)
    if not m:
        return NO_MATCH
    return Parsed(_fmt_24h(*m.groups()))


TIME_MATCHERS = (
    Matcher("sunset", _match_sunset),
    Matcher("suffixed_range", _match_suffixed_range),
    Matcher("shared_suffix_range", _match_shared_suffix_range),
    Matcher("range_24h", _match_range_24h),
    Matcher("single_12h", _match_single_12h),
    Matcher("single_24h", _match_single_24h),
)


# =============================================================================
# PUBLIC API
# =============================================================================


def parse_time_result(text: Optional[str]) -> "ParseResult[str]":
    if text is None or not str(text).strip():
        return Unparsed("empty time text")
    return run_matchers(TIME_MATCHERS, _clean(text))


def parse_time(text: Optional[str]) -> Optional[str]:
    """
    Parse a time or time range into canonical form.

    Examples:
        "7-11pm"          -> "7pm-11pm"
        "7:30 PM - 9:45 PM" -> "7:30pm-9:45pm"
        "7 p.m."          -> "7pm"
        "19:30"           -> "7:30pm"
        "Sunset"          -> "sunset"

    Returns:
        Canonical time string, or None when nothing matched.
    """
    result = parse_time_result(text)
    return result.value if isinstance(result, Parsed) else None
