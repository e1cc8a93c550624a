"""Domain models for campus occupancy, room booking and chat replies."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional


LOCATION_TYPES = ("library", "cafe", "lab", "study_area", "printer", "dining")
USER_TYPES = ("student", "faculty", "other")


def ratio_to_percentage(ratio: float) -> int:
    """Round a non-negative ratio to a whole percentage, halves rounding up."""
    return int(ratio * 100 + 0.5)


@dataclass(frozen=True)
class OpenHours:
    open: str
    close: str


@dataclass(frozen=True)
class Placement:
    building: str
    floor: str


@dataclass(frozen=True)
class Location:
    location_id: str
    name: str
    location_type: str
    capacity: int
    open_hours: OpenHours
    floors: tuple[str, ...] = ()
    features: tuple[str, ...] = ()
    placement: Optional[Placement] = None

    def has_feature(self, feature: str) -> bool:
        return feature in self.features


@dataclass(frozen=True)
class FloorOccupancy:
    floor: str
    count: int


@dataclass(frozen=True)
class ResourceAvailability:
    resource_type: str
    available: int
    total: int


@dataclass(frozen=True)
class OccupancyRecord:
    location_id: str
    current_count: int
    capacity: int
    timestamp: datetime
    floor_data: tuple[FloorOccupancy, ...] = ()
    resources: tuple[ResourceAvailability, ...] = ()

    @property
    def occupancy_ratio(self) -> float:
        if self.capacity <= 0:
            return 0.0
        return self.current_count / self.capacity

    @property
    def occupancy_percentage(self) -> int:
        return ratio_to_percentage(self.occupancy_ratio)

    def resource(self, resource_type: str) -> Optional[ResourceAvailability]:
        for item in self.resources:
            if item.resource_type == resource_type:
                return item
        return None


@dataclass(frozen=True)
class LocationRecommendation:
    location_id: str
    name: str
    reason: str
    occupancy_percentage: int


@dataclass(frozen=True)
class TimeRecommendation:
    hour: int
    reason: str
    improvement_percentage: int = 0


@dataclass(frozen=True)
class ResourceSummary:
    location_id: str
    name: str
    available: int
    total: int


@dataclass(frozen=True)
class HeatmapEntry:
    location_id: str
    name: str
    occupancy: float


@dataclass(frozen=True)
class StudyRoom:
    room_id: int
    room_number: str
    building: str
    floor: int
    capacity: int
    features: tuple[str, ...] = ()
    is_active: bool = True

    @property
    def display_name(self) -> str:
        return f"{self.building} Room {self.room_number}"


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class BookingRequest:
    user_id: str
    room_id: int
    booking_date: date
    start_time: str
    end_time: str
    user_email: Optional[str] = None
    purpose: Optional[str] = None
    attendees: Optional[int] = None


@dataclass(frozen=True)
class Booking:
    booking_id: int
    room_id: int
    user_id: str
    booking_date: date
    start_time: str
    end_time: str
    confirmation_code: str
    status: BookingStatus = BookingStatus.CONFIRMED
    user_email: Optional[str] = None
    purpose: Optional[str] = None
    attendees: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "booking_id": self.booking_id,
            "room_id": self.room_id,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "booking_date": self.booking_date.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "purpose": self.purpose,
            "attendees": self.attendees,
            "confirmation_code": self.confirmation_code,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class UserQuery:
    text: str
    user_id: str
    session_id: str
    user_type: str = "student"
    user_email: Optional[str] = None


@dataclass(frozen=True)
class ChatMessage:
    message_id: int
    user_id: str
    user_type: str
    session_id: str
    content: str
    timestamp: datetime
    is_user_message: bool
    intent: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    response_to: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.message_id,
            "user_id": self.user_id,
            "user_type": self.user_type,
            "session_id": self.session_id,
            "text": self.content,
            "sender": "user" if self.is_user_message else "ai",
            "timestamp": self.timestamp.isoformat(),
            "intent": self.intent,
            "category": self.category,
            "subcategory": self.subcategory,
            "response_to": self.response_to,
        }


@dataclass(frozen=True)
class ChatSessionSummary:
    session_id: str
    last_activity: datetime
    message_count: int


@dataclass(frozen=True)
class AssistantResponse:
    """Reply produced by any handler before it reaches the transport."""

    text: str
    intent: str
    category: str
    confidence: float
    subcategory: Optional[str] = None
    sources: tuple[str, ...] = field(default_factory=tuple)

    def metadata(self) -> dict[str, Any]:
        return {
            "intent": self.intent,
            "category": self.category,
            "subcategory": self.subcategory,
            "confidence": self.confidence,
            "sources": list(self.sources),
        }
