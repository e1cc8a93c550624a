"""Campus occupancy questions and proactive tips rendered as chat replies."""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Callable, Optional

from campus_assistant.domain.models import AssistantResponse, UserQuery, ratio_to_percentage
from campus_assistant.domain.time_utils import format_hour
from campus_assistant.services.occupancy_service import OccupancySimulator
from campus_assistant.utils.config import Settings, get_settings
from campus_assistant.utils.logger import get_logger


logger = get_logger(__name__)

OCCUPANCY_KEYWORDS = (
    "busy",
    "crowded",
    "quiet",
    "empty",
    "full",
    "available",
    "packed",
    "space",
    "spot",
    "best time",
    "when to",
)
LOCATION_KEYWORDS = (
    "library",
    "study",
    "cafe",
    "dining",
    "hall",
    "commons",
    "computer",
    "lab",
    "printer",
    "room",
)

# Checked in order; the first type with a matching keyword wins.
LOCATION_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("library", ("library", "book", "study")),
    ("cafe", ("cafe", "coffee", "food")),
    ("lab", ("lab", "computer")),
    ("study_area", ("study", "quiet", "space")),
    ("printer", ("print", "printer", "printing")),
    ("dining", ("eat", "dining", "food", "lunch", "dinner")),
)

TIME_QUERY_LOCATIONS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("goddard-library", ("library", "goddard")),
    ("academic-commons-cafe", ("cafe", "coffee", "academic commons")),
    ("university-center-dining", ("dining", "dining hall", "food", "eat")),
    ("computer-lab-main", ("lab", "computer lab", "computer")),
)
DEFAULT_TIME_QUERY_LOCATION = "goddard-library"
STUDY_LOCATION_TYPES = ("study_area", "library")

FEATURE_LABELS = (
    ("quiet_zones", "quiet zones"),
    ("outlets", "outlets"),
    ("wifi", "WiFi"),
    ("computers", "computers"),
    ("group_study", "group study rooms"),
)

OCCUPANCY_SOURCE = "Campus Ambient Intelligence System"
TIME_PATTERN_SOURCE = "Campus Time Pattern Analysis"
RESOURCE_SOURCE = "Campus Resource Monitoring"


def _contains_any(text: str, keywords: tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def is_campus_query(text: str) -> bool:
    lowered = text.lower()
    if _contains_any(lowered, OCCUPANCY_KEYWORDS) and _contains_any(lowered, LOCATION_KEYWORDS):
        return True
    return "where" in lowered and _contains_any(lowered, ("study", "eat", "print"))


class CampusInsightService:
    def __init__(
        self,
        simulator: OccupancySimulator,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._settings = settings or get_settings()
        self._simulator = simulator
        self._catalog = simulator.catalog
        self._clock = clock
        self._last_insight_at: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def is_campus_query(self, text: str) -> bool:
        return is_campus_query(text)

    def _response(
        self,
        query: UserQuery,
        text: str,
        intent: str,
        confidence: float,
        source: str = OCCUPANCY_SOURCE,
    ) -> AssistantResponse:
        return AssistantResponse(
            text=text,
            intent=intent,
            category=query.user_type,
            confidence=confidence,
            sources=(source,),
        )

    def handle_campus_query(self, query: UserQuery, now: Optional[datetime] = None) -> AssistantResponse:
        now = now or self._clock()
        lowered = query.text.lower()

        if _contains_any(lowered, ("when", "best time", "time to")):
            return self._handle_time_query(query, lowered, now)
        if _contains_any(lowered, ("printer", "printing")):
            return self._handle_resource_query(query, "printer", now)
        if "computer" in lowered or ("pc" in lowered.split() and "space" not in lowered):
            return self._handle_resource_query(query, "computer", now)

        for location_type, keywords in LOCATION_TYPE_KEYWORDS:
            if _contains_any(lowered, keywords):
                return self._handle_location_query(query, location_type, now)

        return self._handle_general_query(query, now)

    def _handle_location_query(
        self,
        query: UserQuery,
        location_type: str,
        now: datetime,
    ) -> AssistantResponse:
        recommendation = self._simulator.get_recommended_location(location_type, now)
        intent = f"campus_{location_type}_recommendation"
        if recommendation is None:
            return self._response(
                query,
                "I don't have occupancy information for that kind of location right now.",
                intent,
                0.7,
            )

        percentage = recommendation.occupancy_percentage
        if location_type in ("library", "study_area"):
            text = (
                f"Based on current campus occupancy, {recommendation.name} is the best place to study "
                f"right now. It's at {percentage}% capacity. {recommendation.reason}"
            )
            if percentage > 70:
                text += self._time_hint(recommendation.location_id, now)
            record = self._simulator.get_occupancy(recommendation.location_id)
            if record is not None and record.floor_data:
                quietest = min(record.floor_data, key=lambda floor: floor.count)
                text += (
                    f" The {quietest.floor} is the quietest area with only about "
                    f"{quietest.count} people right now."
                )
        elif location_type in ("cafe", "dining"):
            prime_meal_time = 11 <= now.hour <= 13 or 17 <= now.hour <= 19
            if prime_meal_time:
                text = (
                    f"It's peak hours, but {recommendation.name} currently has the shortest lines "
                    f"({percentage}% capacity). {recommendation.reason}"
                )
                if percentage > 80:
                    text += self._time_hint(recommendation.location_id, now)
            else:
                text = (
                    f"Good timing! {recommendation.name} is not very busy right now "
                    f"({percentage}% capacity). {recommendation.reason}"
                )
        elif location_type == "lab":
            computers = next(
                (
                    item
                    for item in self._simulator.get_resource_availability("computer")
                    if item.location_id == recommendation.location_id
                ),
                None,
            )
            if computers is not None:
                text = (
                    f"{recommendation.name} is your best option with {computers.available} computers "
                    f"available out of {computers.total}. It's at {percentage}% capacity overall. "
                    f"{recommendation.reason}"
                )
            else:
                text = f"{recommendation.name} is currently at {percentage}% capacity. {recommendation.reason}"
        else:
            text = f"{recommendation.name} is currently at {percentage}% capacity. {recommendation.reason}"

        return self._response(query, text, intent, 0.9)

    def _time_hint(self, location_id: str, now: datetime) -> str:
        recommendation = self._simulator.get_recommended_time(location_id, now)
        if recommendation.improvement_percentage > 20:
            return (
                f" If you can wait, coming back at {format_hour(recommendation.hour)} would be "
                f"{recommendation.improvement_percentage}% less crowded."
            )
        return ""

    def _handle_time_query(self, query: UserQuery, lowered: str, now: datetime) -> AssistantResponse:
        location_id = DEFAULT_TIME_QUERY_LOCATION
        for candidate_id, keywords in TIME_QUERY_LOCATIONS:
            if _contains_any(lowered, keywords):
                location_id = candidate_id
                break

        location = self._catalog.get_location(location_id)
        if location is None:
            return self._response(
                query,
                "I'm not sure which location you're asking about. Could you specify a campus location "
                "like the library, cafe, or dining hall?",
                "campus_time_recommendation_error",
                0.5,
                TIME_PATTERN_SOURCE,
            )

        recommendation = self._simulator.get_recommended_time(location_id, now)
        if recommendation.improvement_percentage > 0:
            text = (
                f"Based on typical daily patterns, the best time to visit {location.name} today would be "
                f"around {format_hour(recommendation.hour)}. It should be "
                f"{recommendation.improvement_percentage}% less crowded than right now."
            )
            record = self._simulator.get_occupancy(location_id)
            if record is not None:
                text += f" Currently, it's at {record.occupancy_percentage}% capacity."
        else:
            text = f"{location.name}: {recommendation.reason}"

        return self._response(query, text, "campus_time_recommendation", 0.9, TIME_PATTERN_SOURCE)

    def _handle_resource_query(
        self,
        query: UserQuery,
        resource_type: str,
        now: datetime,
    ) -> AssistantResponse:
        intent = f"campus_{resource_type}_availability"
        resources = self._simulator.get_resource_availability(resource_type)
        if not resources:
            return self._response(
                query,
                f"I don't have information about {resource_type} availability right now.",
                intent,
                0.7,
                RESOURCE_SOURCE,
            )

        if resource_type == "printer":
            lines = ["Here's where you can find available printers right now:", ""]
            for index, item in enumerate(resources[:3], start=1):
                lines.append(f"{index}. {item.name}: {item.available} out of {item.total} printers available")
            lines.append("")
            lines.append(
                "Pro tip: Printers are usually less busy early in the morning (before 9AM) "
                "or in the evening after 7PM."
            )
            text = "\n".join(lines)
        else:
            best = resources[0]
            text = (
                f"{best.name} has the most computers available right now "
                f"({best.available} out of {best.total})."
            )
            if len(resources) > 1 and resources[1].available > 3:
                text += f" Alternatively, {resources[1].name} has {resources[1].available} computers available."
            record = self._simulator.get_occupancy(best.location_id)
            if record is not None:
                text += f" The overall space is at {record.occupancy_percentage}% capacity."
            if best.available < 5:
                recommendation = self._simulator.get_recommended_time(best.location_id, now)
                if recommendation.improvement_percentage > 20:
                    text += (
                        f" If you can wait, coming at {format_hour(recommendation.hour)} typically has "
                        f"{recommendation.improvement_percentage}% better computer availability."
                    )

        return self._response(query, text, intent, 0.95, RESOURCE_SOURCE)

    def _handle_general_query(self, query: UserQuery, now: datetime) -> AssistantResponse:
        open_locations = [
            location
            for location in self._catalog.open_locations(now)
            if location.location_type in STUDY_LOCATION_TYPES
        ]
        if not open_locations:
            return self._response(
                query,
                "I don't see any open study locations right now. Most campus facilities are closed at this hour.",
                "campus_general_occupancy",
                0.8,
            )

        def ratio(location_id: str) -> float:
            record = self._simulator.get_occupancy(location_id)
            return record.occupancy_ratio if record is not None else 1.0

        ranked = sorted(open_locations, key=lambda location: ratio(location.location_id))[:3]
        lines = ["Here are the least crowded study spaces on campus right now:", ""]
        for index, location in enumerate(ranked, start=1):
            line = f"{index}. {location.name}: {ratio_to_percentage(ratio(location.location_id))}% capacity"
            notes = [label for feature, label in FEATURE_LABELS if location.has_feature(feature)]
            if notes:
                line += f" ({', '.join(notes)})"
            lines.append(line)
        return self._response(query, "\n".join(lines), "campus_general_occupancy", 0.8)

    def _in_cooldown(self, session_id: str, now: datetime) -> bool:
        last_sent = self._last_insight_at.get(session_id)
        return last_sent is not None and (now - last_sent).total_seconds() < self._settings.insight_cooldown_seconds

    def get_proactive_insight(self, session_id: str, now: Optional[datetime] = None) -> Optional[str]:
        """Return at most one tip per session per cooldown window."""
        now = now or self._clock()

        with self._lock:
            if self._in_cooldown(session_id, now):
                return None

        insight = self._simulator.get_random_insight(now)
        if insight is None:
            return None

        with self._lock:
            # Another request for this session may have won while the tip was built.
            if self._in_cooldown(session_id, now):
                return None
            self._last_insight_at[session_id] = now
            if len(self._last_insight_at) > self._settings.insight_session_prune_threshold:
                retention = self._settings.insight_session_retention_seconds
                self._last_insight_at = {
                    key: sent_at
                    for key, sent_at in self._last_insight_at.items()
                    if (now - sent_at).total_seconds() <= retention
                }
        logger.info("Proactive insight sent | session_id=%s", session_id)
        return insight

    def tracked_sessions(self) -> int:
        with self._lock:
            return len(self._last_insight_at)
