"""
Date helpers for the loosely formatted timestamps found in TMS and
Cargoes Flow payloads.

Values arrive as ISO date or datetime strings, with or without offsets.
Everything is normalized to timezone-aware UTC. Unparseable input yields
None rather than raising.
"""

import math
from datetime import date, datetime, timezone
from typing import Any, Optional

EARLIEST = datetime.min.replace(tzinfo=timezone.utc)

SECONDS_PER_DAY = 24 * 60 * 60


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a timestamp into an aware UTC datetime.

    Accepts datetime, date, or ISO strings ("2024-01-02",
    "2024-01-02T10:00:00Z", "2024-01-02T10:00:00.000+05:00").
    Naive values are treated as UTC.

    Returns:
        datetime in UTC, or None if value is empty or unparseable
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_date(value: Any) -> Optional[date]:
    """Calendar date (UTC) of a timestamp, or None."""
    parsed = parse_datetime(value)
    return parsed.date() if parsed else None


def to_simple_date(value: Any) -> Optional[str]:
    """
    Reduce a timestamp to "YYYY-MM-DD".

    Strings keep their own date part (text before "T"), so no timezone
    shift is applied to what the sender wrote.
    """
    if not value:
        return None
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")
    return str(value).split("T")[0] or None


def whole_days_between(start: datetime, end: datetime) -> int:
    """Floor of (end - start) in days. Negative when end is before start."""
    return math.floor((end - start).total_seconds() / SECONDS_PER_DAY)
