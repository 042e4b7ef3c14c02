"""
Price Parser.

Turns listing price text into a tagged PriceInfo:

- ""               -> free, 0   (missing price means free admission)
- "Free admission" -> free, 0
- "$25-150"        -> variable, "25-150"
- "$45"            -> fixed, 45
- "Tickets 20 & up"-> variable, raw text
"""

from __future__ import annotations

import re
from decimal import Decimal

from event_harvester.normalization.parse_result import (
    NO_MATCH,
    Matcher,
    Parsed,
    ParseResult,
    run_matchers,
)
from event_harvester.schemas.event import PriceInfo, PriceType

DEFAULT_CURRENCY = "USD"

SYMBOL_TO_CODE = {
    "$": "USD",
    "€": "EUR",
    "£": "GBP",
}

_AMOUNT = r"(\d{1,3}(?:,\d{3})+|\d+)(?:\.(\d{1,2}))?"
_FREE_RE = re.compile(r"\bfree\b|\bno[\s-]+cost\b", re.I)
_RANGE_RE = re.compile(
    r"([$€£])\s*" + _AMOUNT + r"\s*(?:-|–|—|to)\s*[$€£]?\s*" + _AMOUNT, re.I
)
_SINGLE_RE = re.compile(r"([$€£])\s*" + _AMOUNT)
_CODE_RE = re.compile(r"\b(usd|eur|gbp)\b", re.I)


def _number_text(whole: str, cents: str | None) -> str:
    whole = whole.replace(",", "")
    if cents and int(cents) != 0:
        return f"{whole}.{cents}"
    return whole


def _to_number(text: str) -> int | float:
    value = Decimal(text)
    if value == value.to_integral_value():
        return int(value)
    return float(value)


def detect_currency(text: str) -> str:
    for symbol, code in SYMBOL_TO_CODE.items():
        if symbol in text:
            return code
    m = _CODE_RE.search(text)
    if m:
        return m.group(1).upper()
    return DEFAULT_CURRENCY


# =============================================================================
# MATCHERS
# =============================================================================


def _match_free(text: str) -> "ParseResult[PriceInfo]":
    if _FREE_RE.search(text):
        return Parsed(PriceInfo(type=PriceType.FREE, amount=0))
    return NO_MATCH


def _match_range(text: str) -> "ParseResult[PriceInfo]":
    m = _RANGE_RE.search(text)
    if not m:
        return NO_MATCH
    symbol, w1, c1, w2, c2 = m.groups()
    low, high = _number_text(w1, c1), _number_text(w2, c2)
    return Parsed(
        PriceInfo(
            type=PriceType.VARIABLE,
            amount=f"{low}-{high}",
            currency=SYMBOL_TO_CODE[symbol],
        )
    )


def _match_single(text: str) -> "ParseResult[PriceInfo]":
    amounts = _SINGLE_RE.findall(text)
    # "$20 advance / $25 door" is not a single price
    if len(amounts) != 1:
        return NO_MATCH
    symbol, whole, cents = amounts[0]
    return Parsed(
        PriceInfo(
            type=PriceType.FIXED,
            amount=_to_number(_number_text(whole, cents)),
            currency=SYMBOL_TO_CODE[symbol],
        )
    )


def _match_literal(text: str) -> "ParseResult[PriceInfo]":
    return Parsed(
        PriceInfo(type=PriceType.VARIABLE, amount=text, currency=detect_currency(text))
    )


PRICE_MATCHERS = (
    Matcher("free", _match_free),
    Matcher("range", _match_range),
    Matcher("single", _match_single),
    Matcher("literal", _match_literal),
)


def parse_price(text: str | None) -> PriceInfo:
    """
    Parse price text. Never fails: unrecognised text is kept as a variable price.
    """
    if text is None or not str(text).strip():
        return PriceInfo(type=PriceType.FREE, amount=0)

    cleaned = " ".join(str(text).split())
    result = run_matchers(PRICE_MATCHERS, cleaned)
    if isinstance(result, Parsed):
        return result.value
    return PriceInfo(type=PriceType.VARIABLE, amount=cleaned)
