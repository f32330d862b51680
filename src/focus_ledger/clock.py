"""Conversions between calendar-day keys and instants."""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from typing import Optional, Union

from .errors import ValidationError

DAY_FMT = "%Y-%m-%d"


def now() -> datetime:
    return datetime.now().replace(microsecond=0)


def day_key(value: Union[datetime, date]) -> str:
    return value.strftime(DAY_FMT)


def today_key() -> str:
    return day_key(datetime.now())


def parse_day_key(value: str) -> date:
    try:
        return datetime.strptime(value, DAY_FMT).date()
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid date {value!r}; expected YYYY-MM-DD") from exc


def start_of_day(value: Union[datetime, date]) -> datetime:
    return datetime(value.year, value.month, value.day)


def parse_instant(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp into a naive local datetime.

    Offset-aware inputs are converted to the local wall clock first so every
    instant in the ledger compares against every other one.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValidationError(f"Malformed time {value!r}") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def format_instant(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, halves rounded up."""
    return round_half_up((end - start).total_seconds() / 60.0)


def seconds_between(start: datetime, end: datetime) -> int:
    return round_half_up((end - start).total_seconds())


def iso_week_bounds(anchor: date) -> tuple[date, date]:
    """Monday and the following Monday of the ISO week containing ``anchor``."""
    monday = anchor - timedelta(days=anchor.weekday())
    return monday, monday + timedelta(days=7)


def month_bounds(anchor: date) -> tuple[date, date]:
    first = anchor.replace(day=1)
    if first.month == 12:
        following = first.replace(year=first.year + 1, month=1)
    else:
        following = first.replace(month=first.month + 1)
    return first, following


def previous_month_bounds(anchor: date) -> tuple[date, date]:
    first, _ = month_bounds(anchor)
    return month_bounds(first - timedelta(days=1))


def iter_days(start: date, end_exclusive: date):
    current = start
    while current < end_exclusive:
        yield current
        current += timedelta(days=1)


def at_clock_time(day: str, value: Union[str, datetime]) -> datetime:
    """Resolve ``HH:MM`` on ``day``; full timestamps pass through ``parse_instant``."""
    if isinstance(value, str) and len(value.strip()) == 5 and value.strip()[2] == ":":
        try:
            clock_time = datetime.strptime(value.strip(), "%H:%M").time()
        except ValueError as exc:
            raise ValidationError(f"Malformed time {value!r}") from exc
        return datetime.combine(parse_day_key(day), clock_time)
    parsed = parse_instant(value)
    if parsed is None:
        raise ValidationError("a time is required")
    return parsed
