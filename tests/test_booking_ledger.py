from __future__ import annotations

import threading
from datetime import date

import pytest

from campus_assistant.domain.models import BookingRequest, BookingStatus
from campus_assistant.repository.booking_ledger import (
    InMemoryBookingLedger,
    RoomNotAvailableError,
    RoomNotFoundError,
)


BOOKING_DATE = date(2026, 3, 3)


def _request(room_id: int = 1, start: str = "10:00", end: str = "11:00", user_id: str = "u1") -> BookingRequest:
    return BookingRequest(
        user_id=user_id,
        room_id=room_id,
        booking_date=BOOKING_DATE,
        start_time=start,
        end_time=end,
        purpose="group project",
        attendees=3,
    )


def test_create_assigns_sequential_ids_and_unique_codes() -> None:
    ledger = InMemoryBookingLedger()
    first = ledger.create(_request(start="10:00", end="11:00"))
    second = ledger.create(_request(start="11:00", end="12:00"))

    assert (first.booking_id, second.booking_id) == (1, 2)
    assert first.confirmation_code.startswith("BK-")
    assert len(first.confirmation_code) == 11
    assert first.confirmation_code != second.confirmation_code
    assert first.status is BookingStatus.CONFIRMED
    assert ledger.get_by_code(first.confirmation_code) == first
    assert ledger.get_by_id(2) == second


def test_overlapping_booking_is_rejected() -> None:
    ledger = InMemoryBookingLedger()
    ledger.create(_request(start="10:00", end="12:00"))

    for start, end in (("11:00", "13:00"), ("09:00", "10:30"), ("09:00", "13:00"), ("10:30", "11:30")):
        with pytest.raises(RoomNotAvailableError):
            ledger.create(_request(start=start, end=end, user_id="u2"))

    # Adjacent windows and other rooms are fine.
    ledger.create(_request(start="12:00", end="13:00", user_id="u2"))
    ledger.create(_request(room_id=2, start="10:00", end="12:00", user_id="u2"))


def test_unknown_room_is_rejected() -> None:
    ledger = InMemoryBookingLedger()
    with pytest.raises(RoomNotFoundError):
        ledger.create(_request(room_id=999))


def test_cancel_is_idempotent_and_owner_only() -> None:
    ledger = InMemoryBookingLedger()
    booking = ledger.create(_request())

    assert ledger.cancel(booking.confirmation_code, "someone-else") is False
    assert ledger.cancel(booking.confirmation_code, "u1") is True
    assert ledger.cancel(booking.confirmation_code, "u1") is False
    assert ledger.cancel("BK-MISSING0", "u1") is False

    cancelled = ledger.get_by_code(booking.confirmation_code)
    assert cancelled.status is BookingStatus.CANCELLED
    assert len(ledger.list_bookings()) == 1

    # The freed window can be booked again.
    ledger.create(_request(user_id="u2"))


def test_list_user_bookings_sorted_and_confirmed_only() -> None:
    ledger = InMemoryBookingLedger()
    late = ledger.create(_request(start="15:00", end="16:00"))
    early = ledger.create(_request(start="09:00", end="10:00"))
    dropped = ledger.create(_request(start="12:00", end="13:00"))
    ledger.create(_request(room_id=3, user_id="other"))
    ledger.cancel(dropped.confirmation_code, "u1")

    assert ledger.list_user_bookings("u1") == [early, late]


def test_find_available_rooms_filters_capacity_and_conflicts() -> None:
    ledger = InMemoryBookingLedger()
    rooms = ledger.find_available_rooms(BOOKING_DATE, "14:00", "15:00", 6)
    assert [room.room_number for room in rooms] == ["102", "202", "302", "401"]

    ledger.create(_request(room_id=6, start="14:30", end="15:30"))
    rooms = ledger.find_available_rooms(BOOKING_DATE, "14:00", "15:00", 6)
    assert [room.room_number for room in rooms] == ["102", "202", "401"]

    assert [room.room_number for room in ledger.find_available_rooms(BOOKING_DATE, "14:00", "15:00", 10)] == []


def test_available_time_slots_skip_booked_hours() -> None:
    ledger = InMemoryBookingLedger()
    ledger.create(_request(start="10:00", end="12:00"))

    slots = ledger.get_available_time_slots(1, BOOKING_DATE)
    starts = [slot.start_time for slot in slots]
    assert starts[0] == "09:00"
    assert starts[-1] == "20:00"
    assert "10:00" not in starts and "11:00" not in starts
    assert len(slots) == 10


def test_format_booking_details() -> None:
    ledger = InMemoryBookingLedger()
    booking = ledger.create(_request(start="14:00", end="16:00"))

    details = ledger.format_booking_details(booking)
    assert "Room: Library 101 (Floor 1)" in details
    assert "Date: Tuesday, March 3, 2026" in details
    assert "Time: 2:00 PM - 4:00 PM" in details
    assert f"Confirmation Code: {booking.confirmation_code}" in details


def test_concurrent_creates_for_same_window_commit_once() -> None:
    ledger = InMemoryBookingLedger()
    results: list[str] = []
    barrier = threading.Barrier(8)

    def attempt(index: int) -> None:
        barrier.wait()
        try:
            ledger.create(_request(user_id=f"user-{index}"))
            results.append("ok")
        except RoomNotAvailableError:
            results.append("conflict")

    threads = [threading.Thread(target=attempt, args=(index,)) for index in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count("ok") == 1
    assert results.count("conflict") == 7
