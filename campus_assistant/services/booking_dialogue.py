"""Multi-turn study-room booking conversation.

One inbound message drives exactly one stage transition for its session:

    initial -> awaiting_purpose -> awaiting_attendees -> awaiting_location
    -> awaiting_date -> awaiting_time -> [awaiting_duration]
    -> awaiting_room_selection -> awaiting_confirmation -> completed | cancelled

Slot extraction lives in `campus_assistant.domain.slot_parsers`; this module
only decides what to do with a parsed (or missing) value.
"""

from __future__ import annotations

import itertools
import math
from datetime import date, datetime, timedelta
from typing import Callable, Optional, Sequence

from campus_assistant.domain.constraints import policy_from_settings
from campus_assistant.domain.models import AssistantResponse, BookingRequest, StudyRoom, UserQuery
from campus_assistant.domain.slot_parsers import (
    extract_attendees,
    extract_date,
    extract_duration_hours,
    extract_time,
    is_affirmative,
    is_booking_request,
    is_interrupt,
    resolve_room_choice,
)
from campus_assistant.domain.time_utils import (
    add_minutes,
    duration_minutes,
    format_long_date,
    format_time_for_display,
    parse_time,
)
from campus_assistant.repository.booking_ledger import BookingLedger, RoomNotAvailableError
from campus_assistant.services.session_store import (
    BookingConversationState,
    BookingSessionStore,
    BookingStage,
)
from campus_assistant.utils.config import Settings, get_settings
from campus_assistant.utils.logger import get_logger


logger = get_logger(__name__)

BOOKING_SUBCATEGORY = "study_rooms"
BOOKING_SOURCE = "Room Booking Service"
# Abandoned conversations are swept once every this many turns.
PRUNE_EVERY_TURNS = 100


class BookingStateError(Exception):
    """Raised when a stage is reached without the slots it depends on."""


class BookingDialogueService:
    def __init__(
        self,
        ledger: BookingLedger,
        store: Optional[BookingSessionStore] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._settings = settings or get_settings()
        self._policy = policy_from_settings(self._settings)
        self._ledger = ledger
        self._clock = clock
        self._store = store or BookingSessionStore(self._policy.session_ttl_seconds, clock=clock)
        self._turns = itertools.count(1)
        self._handlers: dict[BookingStage, Callable[[UserQuery, BookingConversationState], AssistantResponse]] = {
            BookingStage.INITIAL: self._start,
            BookingStage.AWAITING_PURPOSE: self._handle_purpose,
            BookingStage.AWAITING_ATTENDEES: self._handle_attendees,
            BookingStage.AWAITING_LOCATION: self._handle_location,
            BookingStage.AWAITING_DATE: self._handle_date,
            BookingStage.AWAITING_TIME: self._handle_time,
            BookingStage.AWAITING_DURATION: self._handle_duration,
            BookingStage.AWAITING_ROOM_SELECTION: self._handle_room_selection,
            BookingStage.AWAITING_CONFIRMATION: self._handle_confirmation,
        }

    @property
    def store(self) -> BookingSessionStore:
        return self._store

    def is_booking_request(self, text: str) -> bool:
        return is_booking_request(text)

    def has_active_conversation(self, session_id: str) -> bool:
        return self._store.has_active(session_id)

    def get_stage(self, session_id: str) -> Optional[BookingStage]:
        state = self._store.get(session_id)
        return None if state is None else state.stage

    def handle(self, query: UserQuery) -> AssistantResponse:
        """Advance the caller's conversation by one step.

        Never raises: unexpected failures restart the conversation at the
        purpose question and reply with an apology.
        """
        session_id = query.session_id
        if next(self._turns) % PRUNE_EVERY_TURNS == 0:
            self._store.prune_expired()
        with self._store.session_lock(session_id):
            try:
                return self._dispatch(query)
            except Exception:
                logger.exception("Booking dialogue failure | session_id=%s", session_id)
                self._store.save(session_id, BookingConversationState(stage=BookingStage.AWAITING_PURPOSE))
                return self._response(
                    query,
                    "I'm sorry, I ran into a problem with the room booking system. Let's start over. "
                    "What is the purpose of your booking?",
                    "booking_error",
                    0.9,
                )

    def _dispatch(self, query: UserQuery) -> AssistantResponse:
        if is_interrupt(query.text):
            return self._cancel(query)

        state = self._store.get(query.session_id)
        if state is None or state.stage.is_terminal:
            state = BookingConversationState()

        handler = self._handlers[state.stage]
        response = handler(query, state)
        logger.info(
            "Booking dialogue step | session_id=%s | stage=%s | intent=%s",
            query.session_id,
            state.stage.value,
            response.intent,
        )
        return response

    # Responses -------------------------------------------------------------

    def _response(
        self,
        query: UserQuery,
        text: str,
        intent: str,
        confidence: float,
    ) -> AssistantResponse:
        return AssistantResponse(
            text=text,
            intent=intent,
            category=query.user_type,
            subcategory=BOOKING_SUBCATEGORY,
            confidence=confidence,
            sources=(BOOKING_SOURCE,),
        )

    def _advance(
        self,
        query: UserQuery,
        state: BookingConversationState,
        stage: BookingStage,
    ) -> None:
        state.stage = stage
        self._store.save(query.session_id, state)

    def _cancel(self, query: UserQuery) -> AssistantResponse:
        self._store.discard(query.session_id)
        logger.info("Booking dialogue cancelled | session_id=%s", query.session_id)
        return self._response(
            query,
            "I've cancelled the room booking process. Is there something else I can help you with?",
            "room_booking_cancelled",
            0.98,
        )

    # Stages ----------------------------------------------------------------

    def _start(self, query: UserQuery, state: BookingConversationState) -> AssistantResponse:
        self._advance(query, state, BookingStage.AWAITING_PURPOSE)
        return self._response(
            query,
            "I'd be happy to help you book a study room. What is the purpose of your booking? "
            "(e.g., group project, individual study, meeting)",
            "room_booking_purpose",
            0.98,
        )

    def _handle_purpose(self, query: UserQuery, state: BookingConversationState) -> AssistantResponse:
        state.purpose = query.text.strip()
        self._advance(query, state, BookingStage.AWAITING_ATTENDEES)
        return self._response(
            query,
            f'Great! Your booking is for "{state.purpose}". How many people will be using the room?',
            "room_booking_attendees",
            0.95,
        )

    def _handle_attendees(self, query: UserQuery, state: BookingConversationState) -> AssistantResponse:
        attendees = extract_attendees(query.text)
        if attendees is None:
            return self._response(
                query,
                "I need to know how many people will be using the room. "
                "Please provide a number, like '3' or '4 people'.",
                "room_booking_attendees_clarification",
                0.9,
            )
        if not self._policy.min_attendees <= attendees <= self._policy.max_attendees:
            return self._response(
                query,
                "Please specify a reasonable number of people "
                f"({self._policy.min_attendees}-{self._policy.max_attendees}).",
                "room_booking_attendees_validation",
                0.9,
            )

        state.attendees = attendees
        self._advance(query, state, BookingStage.AWAITING_LOCATION)
        return self._response(
            query,
            f"Got it, {attendees} people will be attending. Do you have a preferred location on campus? "
            "(e.g., Library, University Center, Science Center)",
            "room_booking_location",
            0.95,
        )

    def _handle_location(self, query: UserQuery, state: BookingConversationState) -> AssistantResponse:
        # Recorded as a hint only; room search does not filter on it.
        state.preferred_location = query.text.strip()
        self._advance(query, state, BookingStage.AWAITING_DATE)
        return self._response(
            query,
            f'Perfect! I\'ll note your location preference for "{state.preferred_location}". '
            "What date would you like to book? (e.g., tomorrow, next Friday, March 30)",
            "room_booking_date",
            0.95,
        )

    def _handle_date(self, query: UserQuery, state: BookingConversationState) -> AssistantResponse:
        today = self._clock().date()
        booking_date = extract_date(query.text, today)
        if booking_date is None:
            return self._response(
                query,
                "I'm having trouble understanding that date. "
                "Please provide a date like 'tomorrow', 'next Friday', or 'March 30'.",
                "room_booking_date_clarification",
                0.9,
            )
        latest = today + timedelta(days=self._policy.max_days_ahead)
        if not today <= booking_date <= latest:
            return self._response(
                query,
                "I can only book rooms for today or up to "
                f"{self._policy.max_days_ahead} days ahead. Please provide a valid date.",
                "room_booking_date_validation",
                0.9,
            )

        state.booking_date = booking_date
        self._advance(query, state, BookingStage.AWAITING_TIME)
        return self._response(
            query,
            f"Great! You want to book a room on {format_long_date(booking_date)}. "
            "What time would you like to start? (e.g., 2pm, 14:00, or from 2pm to 4pm)",
            "room_booking_time",
            0.95,
        )

    def _starts_too_soon(self, booking_date: date, start_time: str) -> bool:
        now = self._clock()
        if booking_date != now.date():
            return False
        start_minutes = parse_time(start_time)
        requested = datetime.combine(booking_date, datetime.min.time()) + timedelta(minutes=start_minutes)
        earliest = now.replace(tzinfo=None) + timedelta(minutes=self._policy.same_day_lead_minutes)
        return requested < earliest

    def _duration_out_of_bounds(self, minutes: float) -> bool:
        return not (
            self._policy.min_duration_hours * 60 <= minutes <= self._policy.max_duration_hours * 60
        )

    def _duration_bounds_text(self) -> str:
        low = self._policy.min_duration_hours * 60
        high = self._policy.max_duration_hours
        return f"Room bookings must be between {low:g} minutes and {high:g} hours."

    def _handle_time(self, query: UserQuery, state: BookingConversationState) -> AssistantResponse:
        if state.booking_date is None:
            raise BookingStateError("booking date missing at time step")

        slot = extract_time(query.text)
        if slot is None:
            return self._response(
                query,
                "I'm having trouble understanding that time. Please provide a time like '2pm' or '14:00'.",
                "room_booking_time_clarification",
                0.9,
            )

        if slot.end_time is not None:
            if parse_time(slot.end_time) <= parse_time(slot.start_time):
                return self._response(
                    query,
                    "The end time needs to be after the start time. Please provide a time range like "
                    "'from 2pm to 4pm'.",
                    "room_booking_time_validation",
                    0.9,
                )
            if self._duration_out_of_bounds(duration_minutes(slot.start_time, slot.end_time)):
                return self._response(
                    query,
                    f"{self._duration_bounds_text()} Please provide a different time range.",
                    "room_booking_duration_validation",
                    0.9,
                )

        if self._starts_too_soon(state.booking_date, slot.start_time):
            return self._response(
                query,
                "For same-day bookings, the start time must be at least "
                f"{self._policy.same_day_lead_minutes} minutes from now. Please choose a later time.",
                "room_booking_time_validation",
                0.9,
            )

        state.start_time = slot.start_time
        if slot.end_time is not None:
            state.end_time = slot.end_time
            state.duration_hours = duration_minutes(slot.start_time, slot.end_time) / 60
            state.stage = BookingStage.AWAITING_ROOM_SELECTION
            return self._present_room_options(query, state)

        self._advance(query, state, BookingStage.AWAITING_DURATION)
        return self._response(
            query,
            f"Got it, starting at {format_time_for_display(slot.start_time)}. "
            "How long do you need the room for? (e.g., 2 hours, 90 minutes)",
            "room_booking_duration",
            0.95,
        )

    def _handle_duration(self, query: UserQuery, state: BookingConversationState) -> AssistantResponse:
        if state.start_time is None:
            raise BookingStateError("start time missing at duration step")

        hours = extract_duration_hours(query.text)
        if hours is None:
            return self._response(
                query,
                "I'm having trouble understanding that duration. "
                "Please specify how long you need the room, like '2 hours' or '90 minutes'.",
                "room_booking_duration_clarification",
                0.9,
            )
        minutes = math.floor(hours * 60)
        if self._duration_out_of_bounds(minutes):
            return self._response(
                query,
                f"{self._duration_bounds_text()} Please specify a valid duration.",
                "room_booking_duration_validation",
                0.9,
            )

        state.duration_hours = hours
        state.end_time = add_minutes(state.start_time, minutes)
        state.stage = BookingStage.AWAITING_ROOM_SELECTION
        return self._present_room_options(query, state)

    def _search_rooms(self, state: BookingConversationState) -> list[StudyRoom]:
        if (
            state.booking_date is None
            or state.start_time is None
            or state.end_time is None
            or state.attendees is None
        ):
            raise BookingStateError("room search requires date, time window and attendees")
        return self._ledger.find_available_rooms(
            state.booking_date,
            state.start_time,
            state.end_time,
            state.attendees,
        )

    def _window_text(self, state: BookingConversationState) -> str:
        return (
            f"{format_long_date(state.booking_date)} from {format_time_for_display(state.start_time)} "
            f"to {format_time_for_display(state.end_time)}"
        )

    @staticmethod
    def _room_lines(rooms: Sequence[StudyRoom]) -> list[str]:
        return [
            (
                f"{index}. {room.display_name} (Floor {room.floor}) - Capacity: {room.capacity}, "
                f"Features: {', '.join(room.features)}"
            )
            for index, room in enumerate(rooms, start=1)
        ]

    def _no_rooms_left(self, query: UserQuery, state: BookingConversationState, lead: str) -> AssistantResponse:
        attendees = state.attendees
        window = self._window_text(state)
        state.clear_schedule()
        self._advance(query, state, BookingStage.AWAITING_DATE)
        return self._response(
            query,
            f"{lead} there are no rooms available that can accommodate {attendees} people on {window}. "
            "Let's try a different date. What date would you like to book?",
            "room_booking_no_availability",
            0.95,
        )

    def _present_room_options(self, query: UserQuery, state: BookingConversationState) -> AssistantResponse:
        rooms = self._search_rooms(state)
        if not rooms:
            return self._no_rooms_left(query, state, "I'm sorry,")

        state.available_rooms = rooms
        state.selected_room_id = None
        self._advance(query, state, BookingStage.AWAITING_ROOM_SELECTION)
        noun = "room" if len(rooms) == 1 else "rooms"
        lines = [f"I found {len(rooms)} {noun} available on {self._window_text(state)}:", ""]
        lines.extend(self._room_lines(rooms))
        lines.append("")
        lines.append("Which room would you like to book? (Please respond with the room number or the option number)")
        return self._response(query, "\n".join(lines), "room_booking_options", 0.95)

    def _handle_room_selection(self, query: UserQuery, state: BookingConversationState) -> AssistantResponse:
        if not state.available_rooms:
            return self._present_room_options(query, state)

        room = resolve_room_choice(query.text, state.available_rooms)
        if room is None:
            return self._response(
                query,
                "I couldn't identify which room you'd like to book. Please select one of the options by number "
                "(e.g., '1' for the first option) or specify the room number (e.g., 'Room 101').",
                "room_booking_selection_clarification",
                0.9,
            )

        state.selected_room_id = room.room_id
        self._advance(query, state, BookingStage.AWAITING_CONFIRMATION)
        details = "\n".join(
            (
                f"Room: {room.display_name} (Floor {room.floor})",
                f"Date: {format_long_date(state.booking_date)}",
                (
                    f"Time: {format_time_for_display(state.start_time)} to "
                    f"{format_time_for_display(state.end_time)}"
                ),
                f"Capacity: {room.capacity} people",
                f"Features: {', '.join(room.features)}",
            )
        )
        return self._response(
            query,
            f"Great choice! Here are your booking details:\n\n{details}\n\n"
            "Would you like to confirm this booking? (yes/no)",
            "room_booking_confirmation",
            0.95,
        )

    def _handle_confirmation(self, query: UserQuery, state: BookingConversationState) -> AssistantResponse:
        if not is_affirmative(query.text):
            return self._cancel(query)
        if (
            state.selected_room_id is None
            or state.booking_date is None
            or state.start_time is None
            or state.end_time is None
        ):
            raise BookingStateError("confirmation reached without a complete booking")

        request = BookingRequest(
            user_id=query.user_id or query.session_id,
            user_email=query.user_email,
            room_id=state.selected_room_id,
            booking_date=state.booking_date,
            start_time=state.start_time,
            end_time=state.end_time,
            purpose=state.purpose,
            attendees=state.attendees,
        )
        try:
            booking = self._ledger.create(request)
        except RoomNotAvailableError:
            logger.warning(
                "Booking race detected | session_id=%s | room_id=%s",
                query.session_id,
                state.selected_room_id,
            )
            return self._offer_alternatives(query, state)

        self._store.discard(query.session_id)
        details = self._ledger.format_booking_details(booking)
        return self._response(
            query,
            f"Your room has been successfully booked!\n\n{details}\n\n"
            "Your booking is confirmed. You'll receive a confirmation at your email if you've provided one.",
            "room_booking_success",
            0.98,
        )

    def _offer_alternatives(self, query: UserQuery, state: BookingConversationState) -> AssistantResponse:
        rooms = self._search_rooms(state)
        if not rooms:
            return self._no_rooms_left(
                query,
                state,
                "I'm sorry, that room was just booked by someone else, and",
            )

        state.available_rooms = rooms
        state.selected_room_id = None
        self._advance(query, state, BookingStage.AWAITING_ROOM_SELECTION)
        lines = [
            "I'm sorry, it looks like that room was just booked by someone else while we were talking. "
            f"Here are the rooms still available on {self._window_text(state)}:",
            "",
        ]
        lines.extend(self._room_lines(rooms))
        lines.append("")
        lines.append("Which room would you like to book instead?")
        return self._response(query, "\n".join(lines), "room_booking_availability_error", 0.9)
