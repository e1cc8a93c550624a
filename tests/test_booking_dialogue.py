from __future__ import annotations

from dataclasses import replace
import threading
from datetime import datetime, timedelta

from campus_assistant.domain.models import BookingRequest, UserQuery
from campus_assistant.repository.booking_ledger import InMemoryBookingLedger
from campus_assistant.services.booking_dialogue import PRUNE_EVERY_TURNS, BookingDialogueService
from campus_assistant.services.session_store import BookingStage
from campus_assistant.utils.config import get_settings


# Monday 10:00
FIXED_NOW = datetime(2026, 3, 2, 10, 0)


class MutableClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(base, database_path=tmp_path / filename)


def _build_service(tmp_path, ledger=None, clock=None) -> BookingDialogueService:
    settings = _build_test_settings(tmp_path, "dialogue.db")
    return BookingDialogueService(
        ledger=ledger or InMemoryBookingLedger(),
        settings=settings,
        clock=clock or MutableClock(FIXED_NOW),
    )


def _say(service: BookingDialogueService, text: str, session_id: str = "s1", user_id: str = "u1"):
    return service.handle(UserQuery(text=text, user_id=user_id, session_id=session_id))


def _walk_to_time(service: BookingDialogueService, attendees: str = "4", session_id: str = "s1", user_id: str = "u1"):
    for text in ("I need to book a study room", "group project", attendees, "Library", "tomorrow"):
        reply = _say(service, text, session_id, user_id)
    return reply


def test_full_booking_conversation(tmp_path):
    ledger = InMemoryBookingLedger()
    service = _build_service(tmp_path, ledger=ledger)

    reply = _say(service, "I need to book a study room")
    assert reply.intent == "room_booking_purpose"
    assert reply.subcategory == "study_rooms"
    assert reply.sources == ("Room Booking Service",)
    assert reply.category == "student"

    reply = _say(service, "group project")
    assert reply.intent == "room_booking_attendees"
    assert '"group project"' in reply.text

    reply = _say(service, "4")
    assert reply.intent == "room_booking_location"

    reply = _say(service, "Library")
    assert reply.intent == "room_booking_date"

    reply = _say(service, "tomorrow")
    assert reply.intent == "room_booking_time"
    assert "Tuesday, March 3, 2026" in reply.text

    reply = _say(service, "2pm")
    assert reply.intent == "room_booking_duration"
    assert "2:00 PM" in reply.text

    reply = _say(service, "1 hour")
    assert reply.intent == "room_booking_options"
    assert reply.text.startswith("I found 6 rooms available on Tuesday, March 3, 2026 from 2:00 PM to 3:00 PM")
    assert "1. Library Room 101 (Floor 1) - Capacity: 4" in reply.text
    assert service.get_stage("s1") is BookingStage.AWAITING_ROOM_SELECTION

    reply = _say(service, "1")
    assert reply.intent == "room_booking_confirmation"
    assert "Room: Library Room 101 (Floor 1)" in reply.text
    assert "(yes/no)" in reply.text

    reply = _say(service, "yes")
    assert reply.intent == "room_booking_success"
    assert reply.confidence == 0.98
    assert "Confirmation Code: BK-" in reply.text

    bookings = ledger.list_user_bookings("u1")
    assert len(bookings) == 1
    assert bookings[0].room_id == 1
    assert (bookings[0].start_time, bookings[0].end_time) == ("14:00", "15:00")
    assert bookings[0].purpose == "group project"
    assert bookings[0].attendees == 4
    assert not service.has_active_conversation("s1")


def test_time_range_skips_duration_question(tmp_path):
    service = _build_service(tmp_path)
    _walk_to_time(service)

    reply = _say(service, "from 2 to 4pm")
    assert reply.intent == "room_booking_options"
    assert "from 2:00 PM to 4:00 PM" in reply.text
    assert service.store.get("s1").duration_hours == 2.0


def test_out_of_range_option_reprompts(tmp_path):
    service = _build_service(tmp_path)
    _walk_to_time(service, attendees="10")
    reply = _say(service, "2pm")
    reply = _say(service, "2 hours")
    assert reply.intent == "room_booking_options"
    assert reply.text.startswith("I found 1 room available")
    assert "Science Center Room 302" in reply.text

    reply = _say(service, "option 2")
    assert reply.intent == "room_booking_selection_clarification"
    assert service.get_stage("s1") is BookingStage.AWAITING_ROOM_SELECTION

    reply = _say(service, "room 302")
    assert reply.intent == "room_booking_confirmation"


def test_interrupt_clears_conversation(tmp_path):
    service = _build_service(tmp_path)
    _say(service, "I need to book a study room")
    _say(service, "meeting")

    reply = _say(service, "never mind")
    assert reply.intent == "room_booking_cancelled"
    assert not service.has_active_conversation("s1")
    assert service.store.get("s1") is None


def test_declining_confirmation_cancels(tmp_path):
    ledger = InMemoryBookingLedger()
    service = _build_service(tmp_path, ledger=ledger)
    _walk_to_time(service)
    _say(service, "from 2pm to 3pm")
    _say(service, "1")

    reply = _say(service, "no")
    assert reply.intent == "room_booking_cancelled"
    assert ledger.list_bookings() == []


def test_invalid_slots_reprompt_without_advancing(tmp_path):
    service = _build_service(tmp_path)
    _say(service, "I need to book a study room")
    _say(service, "exam prep")

    assert _say(service, "a few of us").intent == "room_booking_attendees_clarification"
    reply = _say(service, "25")
    assert reply.intent == "room_booking_attendees_validation"
    assert "(1-20)" in reply.text
    assert service.get_stage("s1") is BookingStage.AWAITING_ATTENDEES

    _say(service, "3")
    _say(service, "anywhere")

    assert _say(service, "someday").intent == "room_booking_date_clarification"
    assert _say(service, "3/1").intent == "room_booking_date_validation"
    assert _say(service, "12/25").intent == "room_booking_date_validation"
    assert service.get_stage("s1") is BookingStage.AWAITING_DATE

    _say(service, "today")
    assert _say(service, "whenever").intent == "room_booking_time_clarification"
    reply = _say(service, "10:05am")
    assert reply.intent == "room_booking_time_validation"
    assert "15 minutes" in reply.text
    assert _say(service, "from 4pm to 2pm").intent == "room_booking_time_validation"
    assert _say(service, "from 11am to 4pm").intent == "room_booking_duration_validation"

    _say(service, "3pm")
    assert _say(service, "a while").intent == "room_booking_duration_clarification"
    assert _say(service, "5 hours").intent == "room_booking_duration_validation"
    assert _say(service, "15 minutes").intent == "room_booking_duration_validation"
    assert service.get_stage("s1") is BookingStage.AWAITING_DURATION

    assert _say(service, "90 minutes").intent == "room_booking_options"
    assert service.store.get("s1").end_time == "16:30"


def test_no_availability_returns_to_date_keeping_group(tmp_path):
    ledger = InMemoryBookingLedger()
    for room in ledger.catalog.list_rooms():
        ledger.create(
            BookingRequest(
                user_id="blocker",
                room_id=room.room_id,
                booking_date=FIXED_NOW.date() + timedelta(days=1),
                start_time="13:00",
                end_time="17:00",
            )
        )
    service = _build_service(tmp_path, ledger=ledger)
    _walk_to_time(service)

    reply = _say(service, "from 2pm to 3pm")
    assert reply.intent == "room_booking_no_availability"
    state = service.store.get("s1")
    assert state.stage is BookingStage.AWAITING_DATE
    assert state.attendees == 4
    assert state.purpose == "group project"
    assert state.booking_date is None and state.start_time is None

    assert _say(service, "wednesday").intent == "room_booking_time"


def test_losing_a_race_offers_remaining_rooms(tmp_path):
    ledger = InMemoryBookingLedger()
    service = _build_service(tmp_path, ledger=ledger)

    for session_id, user_id in (("s1", "u1"), ("s2", "u2")):
        _walk_to_time(service, attendees="10", session_id=session_id, user_id=user_id)
        _say(service, "from 2pm to 3pm", session_id, user_id)
        assert _say(service, "1", session_id, user_id).intent == "room_booking_confirmation"

    assert _say(service, "yes", "s1", "u1").intent == "room_booking_success"

    reply = _say(service, "yes", "s2", "u2")
    assert reply.intent == "room_booking_no_availability"
    assert "just booked by someone else" in reply.text
    assert service.get_stage("s2") is BookingStage.AWAITING_DATE
    assert len(ledger.list_bookings()) == 1


def test_race_with_alternatives_goes_back_to_selection(tmp_path):
    ledger = InMemoryBookingLedger()
    service = _build_service(tmp_path, ledger=ledger)

    for session_id, user_id in (("s1", "u1"), ("s2", "u2")):
        _walk_to_time(service, attendees="6", session_id=session_id, user_id=user_id)
        _say(service, "from 2pm to 3pm", session_id, user_id)
        _say(service, "1", session_id, user_id)

    _say(service, "yes", "s1", "u1")
    reply = _say(service, "confirm", "s2", "u2")
    assert reply.intent == "room_booking_availability_error"
    assert "Library Room 102" not in reply.text
    assert "1. Library Room 202" in reply.text
    assert service.get_stage("s2") is BookingStage.AWAITING_ROOM_SELECTION

    assert _say(service, "1", "s2", "u2").intent == "room_booking_confirmation"
    assert _say(service, "yes", "s2", "u2").intent == "room_booking_success"
    assert len(ledger.list_user_bookings("u2")) == 1


class ExplodingLedger(InMemoryBookingLedger):
    def find_available_rooms(self, booking_date, start_time, end_time, min_capacity=1):
        raise RuntimeError("storage offline")


def test_internal_error_resets_to_purpose(tmp_path):
    service = _build_service(tmp_path, ledger=ExplodingLedger())
    _walk_to_time(service)

    reply = _say(service, "from 2pm to 3pm")
    assert reply.intent == "booking_error"
    assert service.get_stage("s1") is BookingStage.AWAITING_PURPOSE

    assert _say(service, "study group").intent == "room_booking_attendees"


def test_idle_conversation_expires(tmp_path):
    clock = MutableClock(FIXED_NOW)
    service = _build_service(tmp_path, clock=clock)
    _say(service, "I need to book a study room")
    assert service.has_active_conversation("s1")

    clock.now = FIXED_NOW + timedelta(minutes=31)
    assert not service.has_active_conversation("s1")
    assert _say(service, "hello").intent == "room_booking_purpose"


def test_sessions_are_independent(tmp_path):
    service = _build_service(tmp_path)
    _say(service, "I need to book a study room", "s1")
    _say(service, "I need to book a study room", "s2")
    _say(service, "group project", "s1")

    assert service.get_stage("s1") is BookingStage.AWAITING_ATTENDEES
    assert service.get_stage("s2") is BookingStage.AWAITING_PURPOSE


def test_same_session_messages_are_serialized(tmp_path):
    service = _build_service(tmp_path)
    _say(service, "I need to book a study room")
    _say(service, "group project")
    assert service.get_stage("s1") is BookingStage.AWAITING_ATTENDEES

    barrier = threading.Barrier(2)
    replies = {}

    def answer(text: str) -> None:
        barrier.wait()
        replies[text] = _say(service, text)

    workers = [threading.Thread(target=answer, args=(text,)) for text in ("4", "6")]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join(timeout=5)

    # One reply answered the attendee question, the other the location question.
    assert sorted(reply.intent for reply in replies.values()) == ["room_booking_date", "room_booking_location"]
    state = service.store.get("s1")
    assert state.stage is BookingStage.AWAITING_DATE
    assert {str(state.attendees), state.preferred_location} == {"4", "6"}


def test_finished_and_abandoned_sessions_are_released(tmp_path):
    clock = MutableClock(FIXED_NOW)
    service = _build_service(tmp_path, clock=clock)

    for index in range(150):
        _say(service, "I need to book a study room", f"done-{index}")
        _say(service, "cancel", f"done-{index}")
    for index in range(150):
        _say(service, "I need to book a study room", f"idle-{index}")

    assert service.store.active_sessions() == 150
    assert service.store.tracked_locks() == 150

    clock.now = FIXED_NOW + timedelta(hours=5)
    turns_so_far = 450
    for _ in range(PRUNE_EVERY_TURNS - turns_so_far % PRUNE_EVERY_TURNS):
        _say(service, "I need to book a study room", "fresh")

    assert service.store.active_sessions() == 1
    assert service.store.tracked_locks() == 1
    assert service.store.prune_expired(FIXED_NOW + timedelta(hours=10)) == 1
    assert service.store.tracked_locks() == 0
