"""
Time and rounding helpers shared by the domain and application layers.

All timestamps are timezone-aware UTC. Day boundaries for daily stats are UTC
calendar days.
"""

import math
from datetime import UTC, date, datetime, timedelta


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def add_days(value: datetime, days: int) -> datetime:
    return value + timedelta(days=days)


def day_of(value: datetime) -> date:
    return ensure_utc(value).date()


def round_half_up(value: float, ndigits: int = 0) -> float:
    """
    Round halves away from zero for non-negative values.

    Python's round() uses banker's rounding (round(2.5) == 2), which would
    shift intervals and percentages by one at exact halves.
    """
    factor = 10**ndigits
    # repr-level nudge so 2.675 * 100 == 267.49999... still rounds up
    return math.floor(value * factor + 0.5 + 1e-9) / factor


def round_half_up_int(value: float) -> int:
    return int(round_half_up(value))
