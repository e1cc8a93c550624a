"""Domain-level validation rules for room booking."""

from __future__ import annotations

from dataclasses import dataclass

from campus_assistant.utils.config import Settings


@dataclass(frozen=True)
class BookingPolicy:
    min_attendees: int
    max_attendees: int
    min_duration_hours: float
    max_duration_hours: float
    max_days_ahead: int
    same_day_lead_minutes: int
    session_ttl_seconds: int


def validate_booking_policy(policy: BookingPolicy) -> None:
    if policy.min_attendees < 1:
        raise ValueError("min_attendees must be >= 1")
    if policy.max_attendees < policy.min_attendees:
        raise ValueError("max_attendees must be >= min_attendees")
    if policy.min_duration_hours <= 0.0:
        raise ValueError("min_duration_hours must be > 0")
    if policy.max_duration_hours < policy.min_duration_hours:
        raise ValueError("max_duration_hours must be >= min_duration_hours")
    if policy.max_duration_hours > 24.0:
        raise ValueError("max_duration_hours must be <= 24")
    if policy.max_days_ahead < 0:
        raise ValueError("max_days_ahead must be >= 0")
    if policy.same_day_lead_minutes < 0:
        raise ValueError("same_day_lead_minutes must be >= 0")
    if policy.session_ttl_seconds <= 0:
        raise ValueError("session_ttl_seconds must be > 0")


def policy_from_settings(settings: Settings) -> BookingPolicy:
    policy = BookingPolicy(
        min_attendees=settings.booking_min_attendees,
        max_attendees=settings.booking_max_attendees,
        min_duration_hours=settings.booking_min_duration_hours,
        max_duration_hours=settings.booking_max_duration_hours,
        max_days_ahead=settings.booking_max_days_ahead,
        same_day_lead_minutes=settings.booking_same_day_lead_minutes,
        session_ttl_seconds=settings.booking_session_ttl_seconds,
    )
    validate_booking_policy(policy)
    return policy
