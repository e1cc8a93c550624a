from __future__ import annotations

from datetime import date

import pytest

from campus_assistant.domain.catalog import STUDY_ROOMS
from campus_assistant.domain.slot_parsers import (
    TimeSlot,
    extract_attendees,
    extract_date,
    extract_duration_hours,
    extract_time,
    is_affirmative,
    is_booking_request,
    is_interrupt,
    parse_month_name_date,
    parse_numeric_date,
    resolve_room_choice,
)
from campus_assistant.domain.time_utils import (
    add_minutes,
    duration_minutes,
    format_hour,
    format_long_date,
    format_time_for_display,
    intervals_overlap,
    parse_time,
)


# Monday
TODAY = date(2026, 3, 2)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("today please", date(2026, 3, 2)),
        ("tomorrow", date(2026, 3, 3)),
        ("friday", date(2026, 3, 6)),
        ("monday", date(2026, 3, 9)),
        ("next friday", date(2026, 3, 13)),
        ("3/15", date(2026, 3, 15)),
        ("3/15/27", date(2027, 3, 15)),
        ("March 30", date(2026, 3, 30)),
        ("on the 5th of nothing", None),
    ],
)
def test_extract_date(text, expected) -> None:
    assert extract_date(text, TODAY) == expected


def test_numeric_date_rejects_impossible_day() -> None:
    assert parse_numeric_date("2/30", TODAY) is None


def test_month_name_in_the_past_rolls_to_next_year() -> None:
    assert parse_month_name_date("jan 5th", TODAY) == date(2027, 1, 5)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("2pm", TimeSlot("14:00")),
        ("at 9:30 am", TimeSlot("09:30")),
        ("12am", TimeSlot("00:00")),
        ("12pm", TimeSlot("12:00")),
        ("14:30", TimeSlot("14:30")),
        ("from 2 to 4pm", TimeSlot("14:00", "16:00")),
        ("from 10am to 12pm", TimeSlot("10:00", "12:00")),
        ("from 11 to 1pm", TimeSlot("11:00", "13:00")),
        ("from 1:30pm until 3pm", TimeSlot("13:30", "15:00")),
        ("25:00", None),
        ("whenever", None),
    ],
)
def test_extract_time(text, expected) -> None:
    assert extract_time(text) == expected


def test_range_is_marked_as_range() -> None:
    assert extract_time("from 2pm to 4pm").is_range
    assert not extract_time("2pm").is_range


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("1 hour and 30 minutes", 1.5),
        ("2h 15m", 2.25),
        ("2 hours", 2.0),
        ("1.5 hrs", 1.5),
        ("45 minutes", 0.75),
        ("3", 3.0),
        ("a while", None),
    ],
)
def test_extract_duration_hours(text, expected) -> None:
    assert extract_duration_hours(text) == expected


def test_extract_attendees_takes_first_integer() -> None:
    assert extract_attendees("we are 4 people, maybe 5") == 4
    assert extract_attendees("a few of us") is None


def test_booking_trigger_needs_verb_and_noun() -> None:
    assert is_booking_request("I need to book a study room")
    assert is_booking_request("looking for a place to study")
    assert not is_booking_request("which rooms are busy")
    assert not is_booking_request("I want coffee")


def test_interrupt_matches_whole_words_only() -> None:
    assert is_interrupt("cancel")
    assert is_interrupt("Never mind that")
    assert not is_interrupt("where is the stopwatch")


def test_affirmative() -> None:
    assert is_affirmative("Yes please")
    assert is_affirmative("book it")
    assert not is_affirmative("no thanks")


def test_resolve_room_choice_by_option_room_number_and_building() -> None:
    candidates = [room for room in STUDY_ROOMS if room.capacity >= 6]
    assert resolve_room_choice("1", candidates) == candidates[0]
    assert resolve_room_choice("option 2", candidates) == candidates[1]

    by_number = resolve_room_choice("Room 302", candidates)
    assert by_number is not None and by_number.room_number == "302"

    by_building = resolve_room_choice("university center please", candidates)
    assert by_building is not None and by_building.building == "University Center"

    assert resolve_room_choice("option 99", candidates) is None


def test_clock_helpers() -> None:
    assert parse_time("9:05") == 545
    assert add_minutes("23:30", 60) == "00:30"
    assert format_time_for_display("14:00") == "2:00 PM"
    assert format_time_for_display("00:15") == "12:15 AM"
    assert format_hour(0) == "12AM"
    assert format_hour(13) == "1PM"
    assert format_long_date(TODAY) == "Monday, March 2, 2026"
    with pytest.raises(ValueError):
        parse_time("24:00")


def test_intervals_overlap_shapes() -> None:
    assert intervals_overlap("10:00", "12:00", "11:00", "13:00")
    assert intervals_overlap("10:00", "12:00", "09:00", "11:00")
    assert intervals_overlap("09:00", "13:00", "10:00", "11:00")
    assert not intervals_overlap("10:00", "11:00", "11:00", "12:00")
    assert intervals_overlap("23:00", "01:00", "23:30", "23:45")
    assert duration_minutes("23:00", "01:00") == 120
