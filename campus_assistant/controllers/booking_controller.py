"""HTTP controller layer for study rooms and confirmed bookings."""

from __future__ import annotations

from datetime import date as date_type
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from campus_assistant.controllers.dependencies import get_booking_ledger
from campus_assistant.domain.models import Booking, StudyRoom
from campus_assistant.repository.booking_ledger import BookingLedger
from campus_assistant.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["bookings"])


class BookingResponse(BaseModel):
    booking_id: int = Field(gt=0)
    room_id: int = Field(gt=0)
    user_id: str
    user_email: Optional[str] = None
    booking_date: date_type
    start_time: str
    end_time: str
    purpose: Optional[str] = None
    attendees: Optional[int] = None
    confirmation_code: str
    status: str
    details: str

    @classmethod
    def from_booking(cls, booking: Booking, details: str) -> "BookingResponse":
        payload = booking.to_dict()
        payload["details"] = details
        return cls(**payload)


class CancelBookingRequest(BaseModel):
    user_id: str = Field(min_length=1)


class CancelBookingResponse(BaseModel):
    confirmation_code: str
    cancelled: bool


class StudyRoomResponse(BaseModel):
    room_id: int = Field(gt=0)
    room_number: str
    building: str
    floor: int
    capacity: int = Field(gt=0)
    features: list[str]

    @classmethod
    def from_room(cls, room: StudyRoom) -> "StudyRoomResponse":
        return cls(
            room_id=room.room_id,
            room_number=room.room_number,
            building=room.building,
            floor=room.floor,
            capacity=room.capacity,
            features=list(room.features),
        )


class TimeWindowResponse(BaseModel):
    start_time: str
    end_time: str


@router.get("/bookings", response_model=list[BookingResponse], status_code=status.HTTP_200_OK)
async def list_user_bookings(
    user_id: str = Query(min_length=1),
    ledger: BookingLedger = Depends(get_booking_ledger),
) -> list[BookingResponse]:
    return [
        BookingResponse.from_booking(booking, ledger.format_booking_details(booking))
        for booking in ledger.list_user_bookings(user_id)
    ]


@router.get("/bookings/{confirmation_code}", response_model=BookingResponse, status_code=status.HTTP_200_OK)
async def get_booking(
    confirmation_code: str,
    ledger: BookingLedger = Depends(get_booking_ledger),
) -> BookingResponse:
    booking = ledger.get_by_code(confirmation_code)
    if booking is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Booking not found: {confirmation_code}",
        )
    return BookingResponse.from_booking(booking, ledger.format_booking_details(booking))


@router.post(
    "/bookings/{confirmation_code}/cancel",
    response_model=CancelBookingResponse,
    status_code=status.HTTP_200_OK,
)
async def cancel_booking(
    confirmation_code: str,
    payload: CancelBookingRequest,
    ledger: BookingLedger = Depends(get_booking_ledger),
) -> CancelBookingResponse:
    """Cancelling twice, or as another user, leaves the booking untouched and returns 409."""
    booking = ledger.get_by_code(confirmation_code)
    if booking is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Booking not found: {confirmation_code}",
        )
    if not ledger.cancel(confirmation_code, payload.user_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Booking is not an active booking for this user",
        )
    return CancelBookingResponse(confirmation_code=confirmation_code, cancelled=True)


@router.get("/rooms", response_model=list[StudyRoomResponse], status_code=status.HTTP_200_OK)
async def list_rooms(
    ledger: BookingLedger = Depends(get_booking_ledger),
) -> list[StudyRoomResponse]:
    return [StudyRoomResponse.from_room(room) for room in ledger.catalog.list_rooms()]


@router.get(
    "/rooms/{room_id}/slots",
    response_model=list[TimeWindowResponse],
    status_code=status.HTTP_200_OK,
)
async def room_slots(
    room_id: int,
    date: date_type,
    ledger: BookingLedger = Depends(get_booking_ledger),
) -> list[TimeWindowResponse]:
    room = ledger.catalog.get_room(room_id)
    if room is None or not room.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Room not found: {room_id}",
        )
    return [
        TimeWindowResponse(start_time=window.start_time, end_time=window.end_time)
        for window in ledger.get_available_time_slots(room_id, date)
    ]
