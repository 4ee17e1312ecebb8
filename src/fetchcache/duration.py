"""Duration parsing utilities."""

import re
from datetime import timedelta

from fetchcache.types import Duration

_DURATION_PATTERN = re.compile(r"^(\d+)(ms|s|m|h|d)$")
_UNITS: dict[str, int] = {
    "ms": 1,
    "s": 1000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}


def parse_duration(duration: Duration) -> int:
    """Parse a duration to milliseconds.

    Accepts "300ms", "2s", "5m", "1h", "1d", a timedelta, or a
    non-negative integer already expressed in milliseconds.
    """
    if isinstance(duration, timedelta):
        duration = int(duration.total_seconds() * 1000)
    if isinstance(duration, bool):
        raise ValueError(f"Invalid duration: {duration!r}")
    if isinstance(duration, int):
        if duration < 0:
            raise ValueError(f"Duration must not be negative: {duration!r}")
        return duration

    match = _DURATION_PATTERN.match(duration)
    if not match:
        raise ValueError(f"Invalid duration: {duration!r}")

    value, unit = match.groups()
    return int(value) * _UNITS[unit]


def to_seconds(duration: Duration) -> float:
    """Parse a duration and return it in seconds, for asyncio timers."""
    return parse_duration(duration) / 1000
