"""Clock-time helpers shared by the booking ledger and dialogue."""

from __future__ import annotations

from datetime import date


MINUTES_PER_DAY = 24 * 60


def parse_time(value: str) -> int:
    """Convert an "H:MM" or "HH:MM" 24-hour string to minutes after midnight."""
    hours_text, minutes_text = value.strip().split(":")
    hours = int(hours_text)
    minutes = int(minutes_text)
    if not 0 <= hours <= 23 or not 0 <= minutes <= 59:
        raise ValueError(f"invalid clock time: {value!r}")
    return hours * 60 + minutes


def format_clock(total_minutes: int) -> str:
    total_minutes %= MINUTES_PER_DAY
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def add_minutes(value: str, minutes: int) -> str:
    """Shift a clock time forward, wrapping at midnight."""
    return format_clock(parse_time(value) + minutes)


def format_time_for_display(value: str) -> str:
    """Render "14:00" as "2:00 PM" and "00:00" as "12:00 AM"."""
    total = parse_time(value)
    hours, minutes = divmod(total, 60)
    period = "PM" if hours >= 12 else "AM"
    hours_12 = hours % 12 or 12
    return f"{hours_12}:{minutes:02d} {period}"


def format_hour(hour: int) -> str:
    hour_12 = hour % 12 or 12
    period = "PM" if hour >= 12 else "AM"
    return f"{hour_12}{period}"


def format_long_date(value: date) -> str:
    return f"{value:%A}, {value:%B} {value.day}, {value.year}"


def _interval(start: str, end: str) -> tuple[int, int]:
    start_minutes = parse_time(start)
    end_minutes = parse_time(end)
    # An end at or before the start runs past midnight.
    if end_minutes <= start_minutes:
        end_minutes += MINUTES_PER_DAY
    return start_minutes, end_minutes


def intervals_overlap(start: str, end: str, other_start: str, other_end: str) -> bool:
    """Return True when [start, end) collides with [other_start, other_end).

    Checks the three collision shapes: the new interval starts inside the
    existing one, ends inside it, or fully contains it.
    """
    new_start, new_end = _interval(start, end)
    existing_start, existing_end = _interval(other_start, other_end)

    starts_inside = existing_start <= new_start < existing_end
    ends_inside = existing_start < new_end <= existing_end
    contains = new_start <= existing_start and existing_end <= new_end
    return starts_inside or ends_inside or contains


def duration_minutes(start: str, end: str) -> int:
    start_minutes, end_minutes = _interval(start, end)
    return end_minutes - start_minutes
