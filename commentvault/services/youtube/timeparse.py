"""Resolve YouTube's relative publish times ("3 days ago") to timestamps."""

import re
from datetime import datetime, timedelta

_RELATIVE_TIME_RE = re.compile(
    r"(\d+)\s+(second|minute|hour|day|week|month|year)s?\s+ago", re.IGNORECASE
)

# Months and years are approximated; the raw string is always kept alongside
_UNIT_SECONDS = {
    "second": 1,
    "minute": 60,
    "hour": 60 * 60,
    "day": 24 * 60 * 60,
    "week": 7 * 24 * 60 * 60,
    "month": 30 * 24 * 60 * 60,
    "year": 365 * 24 * 60 * 60,
}


def parse_relative_time(raw: str | None, now: datetime) -> datetime | None:
    """Approximate the absolute time of a relative time string.

    Tolerates prefixes and suffixes such as "Streamed" or "(edited)".

    Returns:
        ``now`` minus the described delta, or None when unparsable
    """
    if not raw:
        return None
    match = _RELATIVE_TIME_RE.search(raw)
    if not match:
        return None
    amount = int(match.group(1))
    unit = match.group(2).lower()
    return now - timedelta(seconds=amount * _UNIT_SECONDS[unit])
