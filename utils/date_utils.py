"""
Timestamp parsing shared by field transforms and the filter chain.

Spreadsheet exports carry dates as ISO strings, offsets without a colon
("-0700"), Excel serial day numbers, or compact YYYYMMDD stamps.
"""

import math
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

import pandas as pd

# Excel day zero (1900-01-00 with the leap-year bug folded in)
EXCEL_EPOCH = datetime(1899, 12, 30, tzinfo=timezone.utc)

_OFFSET_NO_COLON = re.compile(r"([+\-]\d{2})(\d{2})$")
_COMPACT_DATE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value, allow_excel_serial: bool = True) -> Optional[datetime]:
    """
    Parse a spreadsheet cell into an aware UTC datetime.

    Args:
        value: Raw cell (string, datetime, or None)
        allow_excel_serial: Treat an all-digit string as Excel serial days

    Returns:
        Parsed datetime, or None if empty or unparsable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return _as_utc(value)

    text = str(value).strip()
    if not text:
        return None

    if allow_excel_serial and text.isdigit():
        return EXCEL_EPOCH + timedelta(days=int(text))

    cleaned = _OFFSET_NO_COLON.sub(r"\1:\2", text)
    try:
        return _as_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        pass

    try:
        parsed = pd.to_datetime(cleaned, utc=True)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    return parsed.to_pydatetime()


def parse_compact_date(value) -> Optional[datetime]:
    """Parse a date that may be written as YYYYMMDD."""
    if value is None:
        return None
    text = str(value).strip()
    match = _COMPACT_DATE.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        try:
            return datetime(year, month, day, tzinfo=timezone.utc)
        except ValueError:
            return None
    return parse_timestamp(text, allow_excel_serial=False)


def format_iso(value: Optional[datetime]) -> Optional[str]:
    """Render as UTC ISO 8601 with milliseconds, e.g. 2024-03-15T17:00:00.000Z."""
    if value is None:
        return None
    utc = _as_utc(value)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def days_since(value, now: Optional[datetime] = None) -> float:
    """
    Whole days elapsed since a timestamp, rounded up.

    Unparsable or empty timestamps are infinitely old.
    """
    parsed = parse_timestamp(value)
    if parsed is None:
        return math.inf
    current = _as_utc(now) if now else datetime.now(timezone.utc)
    return math.ceil((current - parsed).total_seconds() / 86400)
