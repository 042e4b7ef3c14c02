"""
Field normalizers: pure parsers for listing date, time, price and category text.
"""

from event_harvester.normalization.category import map_category
from event_harvester.normalization.dates import (
    DateRange,
    infer_year,
    parse_date,
    parse_date_range,
)
from event_harvester.normalization.parse_result import Parsed, Unparsed
from event_harvester.normalization.price import parse_price
from event_harvester.normalization.times import parse_time

__all__ = [
    "DateRange",
    "Parsed",
    "Unparsed",
    "infer_year",
    "map_category",
    "parse_date",
    "parse_date_range",
    "parse_price",
    "parse_time",
]
