"""
Wall-clock time helpers for schedules.

Times of day are stored as "HH:MM" strings and compared as minutes since
midnight. All interval comparisons in the booking core go through
`intervals_overlap` so availability and reservation agree on what a clash is.
"""
import re
from datetime import date
from typing import Iterator

MINUTES_PER_DAY = 24 * 60

# Hour may be one or two digits ("9:05" and "09:05" are both accepted)
TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")


class InvalidTimeFormat(ValueError):
    """Raised when a time string is not a valid 24h HH:MM value."""

    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid time format: {value!r} (expected HH:MM)")


def is_valid_time(value) -> bool:
    return isinstance(value, str) and bool(TIME_PATTERN.match(value))


def time_to_minutes(value: str) -> int:
    """
    Convert "HH:MM" to minutes since midnight.

    Raises:
        InvalidTimeFormat: If value does not match HH:MM (00:00 to 23:59)

    Example:
        >>> time_to_minutes("09:30")
        570
    """
    if not is_valid_time(value):
        raise InvalidTimeFormat(value)
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    """
    Convert minutes since midnight to a zero-padded "HH:MM".

    Raises:
        ValueError: If minutes falls outside a single day (0..1439)
    """
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"Minutes out of range for a single day: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time(value: str) -> str:
    """Return the canonical zero-padded form ("9:05" -> "09:05")."""
    return minutes_to_time(time_to_minutes(value))


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open [start, end) intersection; touching endpoints do not overlap."""
    return a_start < b_end and b_start < a_end


def slot_starts(window_start: int, window_end: int, duration: int, stride: int) -> Iterator[int]:
    """Yield candidate start minutes whose slot fits inside the window."""
    if duration <= 0 or stride <= 0:
        raise ValueError("duration and stride must be positive")
    start = window_start
    while start + duration <= window_end:
        yield start
        start += stride


def day_of_week(value: date) -> int:
    """Day index with 0 = Sunday through 6 = Saturday."""
    return value.isoweekday() % 7
