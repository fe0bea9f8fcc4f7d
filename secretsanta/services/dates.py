from __future__ import annotations

import re
from datetime import date

from ..errors import InvalidGameDetails

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def parse_event_date(value: str) -> date:
    """
    Parse a strict YYYY-MM-DD event date. Years outside 1900-2100 and
    dates that do not exist on the calendar (Feb 31) are rejected.
    """
    if not _DATE_RE.match(value or ""):
        raise InvalidGameDetails("Invalid date format. Expected YYYY-MM-DD")

    year, month, day = (int(part) for part in value.split("-"))
    if not (1900 <= year <= 2100 and 1 <= month <= 12 and 1 <= day <= 31):
        raise InvalidGameDetails("Invalid date values. Year must be 1900-2100, month 1-12, day 1-31")

    try:
        return date(year, month, day)
    except ValueError as e:
        raise InvalidGameDetails(
            "Invalid calendar date. The date does not exist (e.g., February 31, April 31)."
        ) from e


def validate_event_time(value: str) -> str:
    if not _TIME_RE.match(value or ""):
        raise InvalidGameDetails("Invalid time format. Expected HH:MM")
    return value
