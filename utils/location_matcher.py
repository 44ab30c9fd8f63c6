"""
Match free-text office names against known locations.

Strategies, first hit wins:
    1. Exact city name
    2. Abbreviation table (CAL, YVR, ...)
    3. Partial city name, for inputs of 4+ characters
    4. "City, Province"
"""

import string
from typing import Iterable, Optional

import structlog

logger = structlog.get_logger(__name__)


LOCATION_ABBREVIATIONS: dict[str, list[str]] = {
    "cal": ["calgary"],
    "van": ["vancouver"],
    "yvr": ["vancouver"],
    "yyz": ["toronto"],
    "tor": ["toronto"],
    "mtl": ["montreal"],
    "ott": ["ottawa"],
    "wpg": ["winnipeg"],
    "edm": ["edmonton"],
    "vic": ["victoria"],
    "hal": ["halifax"],
    "stj": ["st. john's", "st johns"],
}

PARTIAL_MATCH_MIN_LENGTH = 4


def _city(location: dict) -> str:
    return (location.get("city") or "").strip().lower()


def _province(location: dict) -> str:
    return (location.get("province") or "").strip().lower()


def match_location(name: str, locations: list[dict]) -> Optional[dict]:
    """
    Find the location record for one free-text name.

    Args:
        name: Office name as typed (e.g. "YVR", "Calgary, AB")
        locations: Active location records with id, city, province

    Returns:
        Matching record or None
    """
    normalized = (name or "").strip().lower()
    if not normalized:
        return None

    for loc in locations:
        if _city(loc) == normalized:
            return loc

    for city_name in LOCATION_ABBREVIATIONS.get(normalized, []):
        for loc in locations:
            if _city(loc) == city_name:
                return loc

    if len(normalized) >= PARTIAL_MATCH_MIN_LENGTH:
        for loc in locations:
            city = _city(loc)
            if city and (normalized in city or city in normalized):
                return loc

    if "," in normalized:
        city_part, _, province_part = normalized.partition(",")
        city_part = city_part.strip()
        province_part = province_part.strip()
        for loc in locations:
            province = _province(loc)
            if _city(loc) != city_part or not province:
                continue
            if (
                province == province_part
                or province.startswith(province_part)
                or province[:2] in province_part
            ):
                return loc

    return None


def match_locations(names: Iterable[str], locations: list[dict]) -> dict[str, Optional[str]]:
    """
    Resolve many names to location ids.

    Every distinct non-empty name appears in the result; unmatched names
    map to None.
    """
    result: dict[str, Optional[str]] = {}
    uniques = list(dict.fromkeys(n.strip() for n in names if n and n.strip()))

    for name in uniques:
        match = match_location(name, locations)
        result[name] = match["id"] if match else None
        if match is None:
            logger.warning("location_not_matched", location=name)

    logger.info(
        "locations_matched",
        requested=len(uniques),
        matched=sum(1 for v in result.values() if v is not None),
        candidates=len(locations),
    )
    return result


def city_for_abbreviation(code: str) -> Optional[str]:
    """Display city for a site code such as "CAL" or "YVR"."""
    cities = LOCATION_ABBREVIATIONS.get((code or "").strip().lower())
    if not cities:
        return None
    return string.capwords(cities[0])
