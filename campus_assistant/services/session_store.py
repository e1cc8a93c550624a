"""Session-keyed storage for in-progress booking conversations."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Callable, Iterator, Optional

from campus_assistant.domain.models import StudyRoom
from campus_assistant.utils.logger import get_logger


logger = get_logger(__name__)


class BookingStage(str, Enum):
    INITIAL = "initial"
    AWAITING_PURPOSE = "awaiting_purpose"
    AWAITING_ATTENDEES = "awaiting_attendees"
    AWAITING_LOCATION = "awaiting_location"
    AWAITING_DATE = "awaiting_date"
    AWAITING_TIME = "awaiting_time"
    AWAITING_DURATION = "awaiting_duration"
    AWAITING_ROOM_SELECTION = "awaiting_room_selection"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (BookingStage.COMPLETED, BookingStage.CANCELLED)


@dataclass
class BookingConversationState:
    stage: BookingStage = BookingStage.INITIAL
    purpose: Optional[str] = None
    attendees: Optional[int] = None
    preferred_location: Optional[str] = None
    booking_date: Optional[date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration_hours: Optional[float] = None
    available_rooms: list[StudyRoom] = field(default_factory=list)
    selected_room_id: Optional[int] = None
    updated_at: Optional[datetime] = None

    def clear_schedule(self) -> None:
        """Forget the date, time and room choices but keep who and why."""
        self.booking_date = None
        self.start_time = None
        self.end_time = None
        self.duration_hours = None
        self.available_rooms = []
        self.selected_room_id = None


class BookingSessionStore:
    """Holds one conversation state per session with idle expiry.

    Callers serialize work on a session by holding `session_lock(session_id)`
    for the whole read-modify-save cycle. A session's lock lives only while
    someone holds or waits on it, or while the session still has a state.
    """

    def __init__(
        self,
        ttl_seconds: int,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._states: dict[str, BookingConversationState] = {}
        self._session_locks: dict[str, threading.RLock] = {}
        self._lock_users: dict[str, int] = {}
        self._guard = threading.Lock()

    def _is_expired(self, state: BookingConversationState, now: datetime) -> bool:
        if state.updated_at is None:
            return False
        return (now - state.updated_at).total_seconds() > self._ttl_seconds

    def _release_lock_if_idle(self, session_id: str) -> None:
        # Caller holds self._guard.
        if self._lock_users.get(session_id, 0) == 0 and session_id not in self._states:
            self._session_locks.pop(session_id, None)
            self._lock_users.pop(session_id, None)

    def get(self, session_id: str) -> Optional[BookingConversationState]:
        now = self._clock()
        with self._guard:
            state = self._states.get(session_id)
            if state is None:
                return None
            if self._is_expired(state, now):
                del self._states[session_id]
                self._release_lock_if_idle(session_id)
                logger.info("Booking session expired | session_id=%s", session_id)
                return None
            return state

    def save(self, session_id: str, state: BookingConversationState) -> None:
        state.updated_at = self._clock()
        with self._guard:
            self._states[session_id] = state

    def discard(self, session_id: str) -> None:
        with self._guard:
            self._states.pop(session_id, None)
            self._release_lock_if_idle(session_id)

    def has_active(self, session_id: str) -> bool:
        state = self.get(session_id)
        return state is not None and not state.stage.is_terminal

    def active_sessions(self) -> int:
        with self._guard:
            return len(self._states)

    def tracked_locks(self) -> int:
        with self._guard:
            return len(self._session_locks)

    @contextmanager
    def session_lock(self, session_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._session_locks.get(session_id)
            if lock is None:
                lock = threading.RLock()
                self._session_locks[session_id] = lock
            self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._lock_users[session_id] -= 1
                self._release_lock_if_idle(session_id)

    def prune_expired(self, now: Optional[datetime] = None) -> int:
        """Drop idle conversations and their unused locks; return how many states went."""
        now = now or self._clock()
        with self._guard:
            expired = [
                session_id
                for session_id, state in self._states.items()
                if self._is_expired(state, now)
            ]
            for session_id in expired:
                del self._states[session_id]
                self._release_lock_if_idle(session_id)

        if expired:
            logger.info("Booking sessions pruned | expired=%s", len(expired))
        return len(expired)
