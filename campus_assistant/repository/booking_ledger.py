"""In-memory booking ledger for study rooms.

Bookings are append-only. Cancelling flips the status instead of removing the
record, so identifiers and confirmation codes stay stable for the lifetime of
the process.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import date
from typing import Optional
from uuid import uuid4

from campus_assistant.domain.catalog import CampusCatalog
from campus_assistant.domain.models import Booking, BookingRequest, BookingStatus, StudyRoom
from campus_assistant.domain.time_utils import (
    format_long_date,
    format_time_for_display,
    intervals_overlap,
)
from campus_assistant.utils.logger import get_logger


logger = get_logger(__name__)

SLOT_DAY_START_HOUR = 9
SLOT_DAY_END_HOUR = 21


class BookingError(Exception):
    """Base error for booking ledger operations."""


class RoomNotFoundError(BookingError):
    """Raised when the requested room does not exist or is inactive."""


class RoomNotAvailableError(BookingError):
    """Raised when the requested window overlaps a confirmed booking."""


@dataclass(frozen=True)
class TimeWindow:
    start_time: str
    end_time: str

    def to_dict(self) -> dict[str, str]:
        return {"start_time": self.start_time, "end_time": self.end_time}


class BookingLedger(ABC):
    """Storage contract the booking dialogue and HTTP layer depend on."""

    @property
    @abstractmethod
    def catalog(self) -> CampusCatalog:
        raise NotImplementedError

    @abstractmethod
    def create(self, request: BookingRequest) -> Booking:
        raise NotImplementedError

    @abstractmethod
    def cancel(self, confirmation_code: str, user_id: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def get_by_code(self, confirmation_code: str) -> Optional[Booking]:
        raise NotImplementedError

    @abstractmethod
    def list_user_bookings(self, user_id: str) -> list[Booking]:
        raise NotImplementedError

    @abstractmethod
    def is_room_available(
        self,
        room_id: int,
        booking_date: date,
        start_time: str,
        end_time: str,
    ) -> bool:
        raise NotImplementedError

    @abstractmethod
    def find_available_rooms(
        self,
        booking_date: date,
        start_time: str,
        end_time: str,
        min_capacity: int = 1,
    ) -> list[StudyRoom]:
        raise NotImplementedError

    @abstractmethod
    def get_available_time_slots(self, room_id: int, booking_date: date) -> list[TimeWindow]:
        raise NotImplementedError

    @abstractmethod
    def format_booking_details(self, booking: Booking) -> str:
        raise NotImplementedError


class InMemoryBookingLedger(BookingLedger):
    """Arena-backed ledger: a list of bookings plus an id to index map."""

    def __init__(self, catalog: Optional[CampusCatalog] = None) -> None:
        self._catalog = catalog or CampusCatalog()
        self._bookings: list[Booking] = []
        self._index_by_id: dict[int, int] = {}
        self._lock = threading.RLock()

    @property
    def catalog(self) -> CampusCatalog:
        return self._catalog

    def _conflicts(
        self,
        room_id: int,
        booking_date: date,
        start_time: str,
        end_time: str,
    ) -> list[Booking]:
        return [
            booking
            for booking in self._bookings
            if booking.room_id == room_id
            and booking.booking_date == booking_date
            and booking.status is BookingStatus.CONFIRMED
            and intervals_overlap(start_time, end_time, booking.start_time, booking.end_time)
        ]

    def _next_booking_id(self) -> int:
        if not self._bookings:
            return 1
        return max(booking.booking_id for booking in self._bookings) + 1

    def _new_confirmation_code(self) -> str:
        existing = {booking.confirmation_code for booking in self._bookings}
        while True:
            code = f"BK-{uuid4().hex[:8].upper()}"
            if code not in existing:
                return code

    def create(self, request: BookingRequest) -> Booking:
        room = self._catalog.get_room(request.room_id)
        if room is None or not room.is_active:
            raise RoomNotFoundError(f"Room not found or inactive: room_id={request.room_id}")

        with self._lock:
            conflicts = self._conflicts(
                request.room_id,
                request.booking_date,
                request.start_time,
                request.end_time,
            )
            if conflicts:
                raise RoomNotAvailableError(
                    "Room is not available for the requested time: "
                    f"room_id={request.room_id} | date={request.booking_date.isoformat()} | "
                    f"window={request.start_time}-{request.end_time}"
                )

            booking = Booking(
                booking_id=self._next_booking_id(),
                room_id=request.room_id,
                user_id=request.user_id,
                user_email=request.user_email,
                booking_date=request.booking_date,
                start_time=request.start_time,
                end_time=request.end_time,
                purpose=request.purpose,
                attendees=request.attendees,
                confirmation_code=self._new_confirmation_code(),
                status=BookingStatus.CONFIRMED,
            )
            self._index_by_id[booking.booking_id] = len(self._bookings)
            self._bookings.append(booking)

        logger.info(
            "Booking created | booking_id=%s | room_id=%s | date=%s | window=%s-%s | code=%s",
            booking.booking_id,
            booking.room_id,
            booking.booking_date.isoformat(),
            booking.start_time,
            booking.end_time,
            booking.confirmation_code,
        )
        return booking

    def cancel(self, confirmation_code: str, user_id: str) -> bool:
        with self._lock:
            for booking in self._bookings:
                if (
                    booking.confirmation_code == confirmation_code
                    and booking.user_id == user_id
                    and booking.status is BookingStatus.CONFIRMED
                ):
                    index = self._index_by_id[booking.booking_id]
                    self._bookings[index] = replace(booking, status=BookingStatus.CANCELLED)
                    logger.info(
                        "Booking cancelled | booking_id=%s | code=%s",
                        booking.booking_id,
                        confirmation_code,
                    )
                    return True
        return False

    def get_by_id(self, booking_id: int) -> Optional[Booking]:
        with self._lock:
            index = self._index_by_id.get(booking_id)
            return None if index is None else self._bookings[index]

    def get_by_code(self, confirmation_code: str) -> Optional[Booking]:
        with self._lock:
            for booking in self._bookings:
                if booking.confirmation_code == confirmation_code:
                    return booking
        return None

    def list_user_bookings(self, user_id: str) -> list[Booking]:
        with self._lock:
            bookings = [
                booking
                for booking in self._bookings
                if booking.user_id == user_id and booking.status is BookingStatus.CONFIRMED
            ]
        return sorted(bookings, key=lambda booking: (booking.booking_date, booking.start_time))

    def list_bookings(self) -> list[Booking]:
        with self._lock:
            return list(self._bookings)

    def is_room_available(
        self,
        room_id: int,
        booking_date: date,
        start_time: str,
        end_time: str,
    ) -> bool:
        with self._lock:
            return not self._conflicts(room_id, booking_date, start_time, end_time)

    def find_available_rooms(
        self,
        booking_date: date,
        start_time: str,
        end_time: str,
        min_capacity: int = 1,
    ) -> list[StudyRoom]:
        return [
            room
            for room in self._catalog.list_rooms()
            if room.capacity >= min_capacity
            and self.is_room_available(room.room_id, booking_date, start_time, end_time)
        ]

    def get_available_time_slots(self, room_id: int, booking_date: date) -> list[TimeWindow]:
        windows = [
            TimeWindow(start_time=f"{hour:02d}:00", end_time=f"{hour + 1:02d}:00")
            for hour in range(SLOT_DAY_START_HOUR, SLOT_DAY_END_HOUR)
        ]
        return [
            window
            for window in windows
            if self.is_room_available(room_id, booking_date, window.start_time, window.end_time)
        ]

    def format_booking_details(self, booking: Booking) -> str:
        room = self._catalog.get_room(booking.room_id)
        if room is None:
            return "Booking details not available"

        return "\n".join(
            (
                f"Room: {room.building} {room.room_number} (Floor {room.floor})",
                f"Date: {format_long_date(booking.booking_date)}",
                (
                    f"Time: {format_time_for_display(booking.start_time)} - "
                    f"{format_time_for_display(booking.end_time)}"
                ),
                f"Capacity: {room.capacity} people",
                f"Features: {', '.join(room.features)}",
                f"Confirmation Code: {booking.confirmation_code}",
            )
        )
