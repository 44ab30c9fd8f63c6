"""
Shared helpers for dates and location names.
"""

from utils.date_utils import (
    parse_timestamp,
    parse_compact_date,
    format_iso,
    days_since,
)
from utils.location_matcher import (
    LOCATION_ABBREVIATIONS,
    match_location,
    match_locations,
    city_for_abbreviation,
)

__all__ = [
    "parse_timestamp",
    "parse_compact_date",
    "format_iso",
    "days_since",
    "LOCATION_ABBREVIATIONS",
    "match_location",
    "match_locations",
    "city_for_abbreviation",
]
