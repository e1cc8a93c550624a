"""Ordered slot parsers for the room-booking conversation.

Each parser takes raw user text and returns the extracted value or ``None``
when the text does not match. Composite extractors try their parsers in a
fixed priority order and stop at the first match.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Callable, Optional, Sequence

from campus_assistant.domain.models import StudyRoom
from campus_assistant.domain.time_utils import format_clock


WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
MONTH_PREFIXES = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")

_WEEKDAY_PATTERN = "|".join(WEEKDAYS)
_NEXT_WEEKDAY_RE = re.compile(rf"\bnext\s+({_WEEKDAY_PATTERN})\b")
_WEEKDAY_RE = re.compile(rf"\b({_WEEKDAY_PATTERN})\b")
_NUMERIC_DATE_RE = re.compile(r"\b(\d{1,2})[/\-.](\d{1,2})(?:[/\-.](\d{2,4}))?\b")
_MONTH_NAME_RE = re.compile(
    r"\b(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|jun(?:e)?|jul(?:y)?|"
    r"aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
    r"\.?\s+(\d{1,2})(?:st|nd|rd|th)?\b"
)

_TIME_RANGE_RE = re.compile(
    r"\bfrom\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\s+(?:to|until|-)\s+"
    r"(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b"
)
_TWELVE_HOUR_RE = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*(am|pm)\b")
_TWENTY_FOUR_HOUR_RE = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\b")

_COMBINED_DURATION_RE = re.compile(
    r"(\d+)\s*(?:hours?|hrs?|h)\s*(?:and\s*)?(\d+)\s*(?:minutes?|mins?|m)\b"
)
_HOURS_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:hours?|hrs?|h)\b")
_MINUTES_DURATION_RE = re.compile(r"(\d+)\s*(?:minutes?|mins?|m)\b")
_BARE_NUMBER_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*$")

_FIRST_INTEGER_RE = re.compile(r"(\d+)")
_OPTION_RE = re.compile(r"^(?:option\s*#?\s*)?(\d+)$")
_ROOM_NUMBER_RE = re.compile(r"(?:room\s*)?(\d+)")

_BOOKING_VERBS = ("book", "reserve", "need", "want", "looking for")
_BOOKING_NOUNS = ("study room", "room", "study space", "place to study")
_INTERRUPT_RE = re.compile(r"\b(cancel|stop|nevermind|never mind)\b")
_AFFIRMATIVE_RE = re.compile(r"\b(yes|yeah|yep|confirm|book it|looks good)\b")


@dataclass(frozen=True)
class TimeSlot:
    """Start time with an optional end time, both "HH:MM" 24-hour strings."""

    start_time: str
    end_time: Optional[str] = None

    @property
    def is_range(self) -> bool:
        return self.end_time is not None


# Intent detection -----------------------------------------------------------


def is_booking_request(text: str) -> bool:
    lowered = text.lower()
    has_verb = any(verb in lowered for verb in _BOOKING_VERBS)
    has_noun = any(noun in lowered for noun in _BOOKING_NOUNS)
    return has_verb and has_noun


def is_interrupt(text: str) -> bool:
    return _INTERRUPT_RE.search(text.lower()) is not None


def is_affirmative(text: str) -> bool:
    return _AFFIRMATIVE_RE.search(text.lower()) is not None


# Dates ----------------------------------------------------------------------


def _days_until(weekday_index: int, today: date) -> int:
    days = weekday_index - today.weekday()
    if days <= 0:
        days += 7
    return days


def parse_relative_day(text: str, today: date) -> Optional[date]:
    lowered = text.lower()
    if re.search(r"\btoday\b", lowered):
        return today
    if re.search(r"\btomorrow\b", lowered):
        return today + timedelta(days=1)
    return None


def parse_next_weekday(text: str, today: date) -> Optional[date]:
    """Resolve "next <weekday>" to the occurrence after the coming one."""
    match = _NEXT_WEEKDAY_RE.search(text.lower())
    if match is None:
        return None
    days = _days_until(WEEKDAYS.index(match.group(1)), today) + 7
    return today + timedelta(days=days)


def parse_weekday(text: str, today: date) -> Optional[date]:
    match = _WEEKDAY_RE.search(text.lower())
    if match is None:
        return None
    return today + timedelta(days=_days_until(WEEKDAYS.index(match.group(1)), today))


def parse_numeric_date(text: str, today: date) -> Optional[date]:
    match = _NUMERIC_DATE_RE.search(text)
    if match is None:
        return None
    month_text, day_text, year_text = match.groups()
    if year_text is None:
        year = today.year
    elif len(year_text) == 2:
        year = 2000 + int(year_text)
    else:
        year = int(year_text)
    try:
        return date(year, int(month_text), int(day_text))
    except ValueError:
        return None


def parse_month_name_date(text: str, today: date) -> Optional[date]:
    match = _MONTH_NAME_RE.search(text.lower())
    if match is None:
        return None
    month = MONTH_PREFIXES.index(match.group(1)[:3]) + 1
    day = int(match.group(2))
    try:
        resolved = date(today.year, month, day)
    except ValueError:
        return None
    if resolved < today:
        try:
            resolved = date(today.year + 1, month, day)
        except ValueError:
            return None
    return resolved


DATE_PARSERS: tuple[Callable[[str, date], Optional[date]], ...] = (
    parse_relative_day,
    parse_next_weekday,
    parse_weekday,
    parse_numeric_date,
    parse_month_name_date,
)


def extract_date(text: str, today: date) -> Optional[date]:
    for parser in DATE_PARSERS:
        result = parser(text, today)
        if result is not None:
            return result
    return None


# Times ----------------------------------------------------------------------


def _to_24_hour(hour: int, meridiem: str) -> int:
    if meridiem == "pm" and hour < 12:
        return hour + 12
    if meridiem == "am" and hour == 12:
        return 0
    return hour


def _valid_twelve_hour(hour: int, minute: int) -> bool:
    return 1 <= hour <= 12 and 0 <= minute <= 59


def parse_time_range(text: str) -> Optional[TimeSlot]:
    """Parse "from H[:MM][am|pm] to H[:MM]am|pm"."""
    match = _TIME_RANGE_RE.search(text.lower())
    if match is None:
        return None
    start_hour_text, start_minute_text, start_meridiem, end_hour_text, end_minute_text, end_meridiem = (
        match.groups()
    )
    start_hour = int(start_hour_text)
    start_minute = int(start_minute_text or 0)
    end_hour = int(end_hour_text)
    end_minute = int(end_minute_text or 0)
    if not _valid_twelve_hour(end_hour, end_minute):
        return None
    if not 0 <= start_minute <= 59:
        return None

    end_hour = _to_24_hour(end_hour, end_meridiem)
    if start_meridiem is not None:
        if not _valid_twelve_hour(start_hour, start_minute):
            return None
        start_hour = _to_24_hour(start_hour, start_meridiem)
    else:
        if not 0 <= start_hour <= 23:
            return None
        # Start inherits PM only when that keeps it before the end.
        candidate = start_hour + 12
        if (
            end_meridiem == "pm"
            and start_hour < 12
            and candidate * 60 + start_minute < end_hour * 60 + end_minute
        ):
            start_hour = candidate

    return TimeSlot(
        start_time=format_clock(start_hour * 60 + start_minute),
        end_time=format_clock(end_hour * 60 + end_minute),
    )


def parse_twelve_hour_time(text: str) -> Optional[TimeSlot]:
    match = _TWELVE_HOUR_RE.search(text.lower())
    if match is None:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    if not _valid_twelve_hour(hour, minute):
        return None
    hour = _to_24_hour(hour, match.group(3))
    return TimeSlot(start_time=format_clock(hour * 60 + minute))


def parse_twenty_four_hour_time(text: str) -> Optional[TimeSlot]:
    match = _TWENTY_FOUR_HOUR_RE.search(text)
    if match is None:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    if not 0 <= hour <= 23 or not 0 <= minute <= 59:
        return None
    return TimeSlot(start_time=format_clock(hour * 60 + minute))


TIME_PARSERS: tuple[Callable[[str], Optional[TimeSlot]], ...] = (
    parse_time_range,
    parse_twelve_hour_time,
    parse_twenty_four_hour_time,
)


def extract_time(text: str) -> Optional[TimeSlot]:
    for parser in TIME_PARSERS:
        result = parser(text)
        if result is not None:
            return result
    return None


# Durations ------------------------------------------------------------------


def parse_combined_duration(text: str) -> Optional[float]:
    match = _COMBINED_DURATION_RE.search(text.lower())
    if match is None:
        return None
    return int(match.group(1)) + int(match.group(2)) / 60


def parse_hours_duration(text: str) -> Optional[float]:
    match = _HOURS_DURATION_RE.search(text.lower())
    if match is None:
        return None
    return float(match.group(1))


def parse_minutes_duration(text: str) -> Optional[float]:
    match = _MINUTES_DURATION_RE.search(text.lower())
    if match is None:
        return None
    return int(match.group(1)) / 60


def parse_bare_hours(text: str) -> Optional[float]:
    match = _BARE_NUMBER_RE.match(text)
    if match is None:
        return None
    return float(match.group(1))


DURATION_PARSERS: tuple[Callable[[str], Optional[float]], ...] = (
    parse_combined_duration,
    parse_hours_duration,
    parse_minutes_duration,
    parse_bare_hours,
)


def extract_duration_hours(text: str) -> Optional[float]:
    for parser in DURATION_PARSERS:
        result = parser(text)
        if result is not None:
            return result
    return None


# Headcount and room choice --------------------------------------------------


def extract_attendees(text: str) -> Optional[int]:
    match = _FIRST_INTEGER_RE.search(text)
    if match is None:
        return None
    return int(match.group(1))


def resolve_room_choice(text: str, candidates: Sequence[StudyRoom]) -> Optional[StudyRoom]:
    """Match a reply against numbered options, then room numbers, then buildings."""
    lowered = text.strip().lower()

    option_match = _OPTION_RE.match(lowered)
    if option_match is not None:
        index = int(option_match.group(1)) - 1
        if 0 <= index < len(candidates):
            return candidates[index]

    room_match = _ROOM_NUMBER_RE.search(lowered)
    if room_match is not None:
        room_number = room_match.group(1)
        for room in candidates:
            if room.room_number == room_number:
                return room

    for room in candidates:
        building = room.building.lower()
        if f"{building} room {room.room_number}" in lowered or building in lowered:
            return room
    return None
