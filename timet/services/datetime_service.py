"""Datetime helpers: epoch timestamps in, local wall-clock strings out."""

from __future__ import annotations

import re
from datetime import date

import pendulum

# Output format for timestamps in reports
DISPLAY_FORMAT = "YYYY-MM-DD HH:mm:ss"

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_RANGE_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})\.\.(\d{4}-\d{2}-\d{2})$")

# Named report filters: (days back from today, span in days)
_NAMED_RANGES = {
    "today": (0, 1),
    "yesterday": (1, 1),
    "week": (7, 8),
    "month": (30, 31),
}


def now_timestamp() -> int:
    """Return the current time as integer epoch seconds."""
    return pendulum.now("UTC").int_timestamp


def format_timestamp(timestamp: int | None, tz: str | None = None) -> str:
    """Format epoch seconds as ``YYYY-MM-DD HH:mm:ss`` in the local timezone."""
    if timestamp is None:
        return "-"
    return pendulum.from_timestamp(timestamp, tz=tz or pendulum.local_timezone()).format(
        DISPLAY_FORMAT
    )


def format_duration(seconds: int) -> str:
    """Format a duration as ``HH:MM:SS``; hours may exceed 24."""
    sign = "-" if seconds < 0 else ""
    hours, rem = divmod(abs(int(seconds)), 3600)
    minutes, secs = divmod(rem, 60)
    return f"{sign}{hours:02d}:{minutes:02d}:{secs:02d}"


def parse_time_of_day(value: str, reference: int, tz: str | None = None) -> int:
    """Parse a lax ``HH[:MM[:SS]]`` string on the same day as ``reference``.

    Accepts ``9``, ``0930``, ``09:30``, ``093015`` and ``09:30:15``.  Missing
    components default to zero.  Returns epoch seconds.
    """
    digits = re.sub(r"\D", "", value)
    if not digits or len(digits) > 6:
        raise ValueError(f"Invalid time: {value!r}")
    if len(digits) % 2:
        digits = "0" + digits
    digits = digits.ljust(6, "0")
    hour, minute, second = int(digits[0:2]), int(digits[2:4]), int(digits[4:6])
    if hour > 23 or minute > 59 or second > 59:
        raise ValueError(f"Invalid time: {value!r}")

    day = pendulum.from_timestamp(reference, tz=tz or pendulum.local_timezone())
    return day.set(hour=hour, minute=minute, second=second).int_timestamp


def date_range(filter_: str | None, tz: str | None = None) -> tuple[int, int]:
    """Resolve a report filter into a ``[since, until)`` pair of epoch seconds.

    Accepts ``today`` (default), ``yesterday``, ``week``, ``month``, a single
    ``YYYY-MM-DD`` date or a ``YYYY-MM-DD..YYYY-MM-DD`` range (both inclusive).
    """
    zone = tz or pendulum.local_timezone()
    key = (filter_ or "today").strip().lower()

    if key in _NAMED_RANGES:
        back, span = _NAMED_RANGES[key]
        start = pendulum.today(zone).subtract(days=back)
        return start.int_timestamp, start.add(days=span).int_timestamp

    if _DATE_RE.match(key):
        start = _start_of_day(key, zone)
        return start.int_timestamp, start.add(days=1).int_timestamp

    match = _RANGE_RE.match(key)
    if match:
        start = _start_of_day(match.group(1), zone)
        end = _start_of_day(match.group(2), zone).add(days=1)
        if end <= start:
            raise ValueError(f"Invalid date range: {filter_!r}")
        return start.int_timestamp, end.int_timestamp

    raise ValueError(
        f"Invalid filter: {filter_!r}. Use today, yesterday, week, month, "
        "YYYY-MM-DD or YYYY-MM-DD..YYYY-MM-DD"
    )


def _start_of_day(value: str, zone: str | pendulum.Timezone) -> pendulum.DateTime:
    try:
        day = date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid date: {value!r}") from exc
    return pendulum.datetime(day.year, day.month, day.day, tz=zone)
