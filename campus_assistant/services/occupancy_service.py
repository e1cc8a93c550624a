"""Synthetic campus occupancy simulator and recommendation engine.

Occupancy is never measured. Each location gets a 7x24 matrix of expected
occupancy ratios at startup (weekday rows follow ``datetime.weekday()``), and
live headcounts drift toward that expectation on every refresh with a small
random offset. Floor and resource breakdowns are regenerated from the new
headcount each time.
"""

from __future__ import annotations

import math
import threading
from datetime import datetime
from typing import Callable, Optional, Sequence

import numpy as np

from campus_assistant.domain.catalog import CampusCatalog, is_open_at
from campus_assistant.domain.models import (
    FloorOccupancy,
    HeatmapEntry,
    Location,
    LocationRecommendation,
    OccupancyRecord,
    ResourceAvailability,
    ResourceSummary,
    TimeRecommendation,
    ratio_to_percentage,
)
from campus_assistant.domain.time_utils import format_hour
from campus_assistant.utils.config import Settings, get_settings
from campus_assistant.utils.logger import get_logger


logger = get_logger(__name__)

DAYS_PER_WEEK = 7
HOURS_PER_DAY = 24
SATURDAY = 5
SUNDAY = 6

POPULAR_LOCATION_IDS = ("goddard-library", "academic-commons", "university-center-dining")

STRICT_IMPROVEMENT_FACTOR = 0.75
LOOKAHEAD_HOURS = 11
GREAT_TIME_THRESHOLD = 0.3


def pattern_ratio(location_type: str, weekday: int, hour: int) -> float:
    """Hand-authored expected occupancy before jitter is applied."""
    weekend = weekday in (SATURDAY, SUNDAY)

    if location_type in ("library", "study_area"):
        if hour < 7:
            ratio = 0.0
        elif hour < 9:
            ratio = 0.1
        elif hour < 11:
            ratio = 0.3
        elif hour < 14:
            ratio = 0.5
        elif hour < 17:
            ratio = 0.7
        elif hour < 20:
            ratio = 0.8
        elif hour < 23:
            ratio = 0.6
        else:
            ratio = 0.3
        return ratio * 0.7 if weekend else ratio

    if location_type == "cafe":
        if hour < 7 or hour >= 19:
            ratio = 0.0
        elif hour < 9:
            ratio = 0.6
        elif 11 <= hour < 14:
            ratio = 0.9
        elif 15 <= hour < 17:
            ratio = 0.7
        else:
            ratio = 0.4
        return ratio * 0.5 if weekend else ratio

    if location_type == "lab":
        if hour < 8 or hour >= 22:
            ratio = 0.0
        elif 9 <= hour < 12:
            ratio = 0.5
        elif 12 <= hour < 14:
            ratio = 0.3
        elif 14 <= hour < 17:
            ratio = 0.7
        elif 19 <= hour < 22:
            ratio = 0.9
        else:
            ratio = 0.4
        if weekday == SUNDAY:
            return ratio * 0.3
        if weekday == SATURDAY:
            return ratio * 0.5
        return ratio

    if location_type == "dining":
        if hour < 7 or hour >= 21:
            return 0.0
        if hour < 9:
            return 0.7
        if 11 <= hour < 14:
            return 0.9
        if 17 <= hour < 19:
            return 0.8
        return 0.2

    if hour < 8 or hour >= 20:
        return 0.1
    if 10 <= hour < 16:
        return 0.6
    return 0.3


def fallback_ratio(location_type: str, hour: int) -> float:
    """Coarse curve used only when a location has no pattern matrix."""
    if location_type in ("library", "study_area"):
        if hour < 8:
            return 0.05
        if hour < 10:
            return 0.2
        if hour < 14:
            return 0.5
        if hour < 19:
            return 0.7
        if hour < 22:
            return 0.6
        return 0.3
    if location_type == "cafe":
        if hour < 7 or hour >= 19:
            return 0.0
        if hour < 9:
            return 0.6
        if hour < 11:
            return 0.3
        if hour < 14:
            return 0.8
        if hour < 16:
            return 0.4
        return 0.2
    if location_type == "lab":
        if hour < 8 or hour >= 22:
            return 0.0
        if hour < 12:
            return 0.4
        if hour < 14:
            return 0.3
        if hour < 17:
            return 0.6
        if hour < 21:
            return 0.8
        return 0.4
    if location_type == "dining":
        if hour < 7 or hour >= 21:
            return 0.0
        if hour < 9:
            return 0.6
        if hour < 11:
            return 0.1
        if hour < 14:
            return 0.9
        if hour < 16:
            return 0.2
        if hour < 19:
            return 0.8
        return 0.3
    if hour < 8 or hour >= 20:
        return 0.1
    if hour < 17:
        return 0.6
    return 0.3


def _study_room_availability(hour: int) -> float:
    if hour < 9:
        return 0.9
    if hour < 12:
        return 0.6
    if hour < 17:
        return 0.3
    if hour < 21:
        return 0.2
    return 0.7


class OccupancySimulator:
    """Owns live occupancy records and answers recommendation queries.

    Records are swapped in as a whole new mapping on each refresh, so readers
    never need the lock. The lock only serializes writers and access to the
    random generator.
    """

    def __init__(
        self,
        catalog: Optional[CampusCatalog] = None,
        settings: Optional[Settings] = None,
        rng: Optional[np.random.Generator] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._settings = settings or get_settings()
        self._catalog = catalog or CampusCatalog()
        self._rng = rng if rng is not None else np.random.default_rng(
            self._settings.occupancy_random_seed
        )
        self._clock = clock
        self._lock = threading.RLock()

        now = self._clock()
        self._patterns: dict[str, np.ndarray] = {
            location.location_id: self._build_pattern(location)
            for location in self._catalog.list_locations()
        }
        self._records: dict[str, OccupancyRecord] = self._initial_records(now)
        self._last_refresh = now
        logger.info(
            "Occupancy simulator initialized | locations=%s | seed=%s",
            len(self._records),
            self._settings.occupancy_random_seed,
        )

    @property
    def catalog(self) -> CampusCatalog:
        return self._catalog

    @property
    def last_refresh(self) -> datetime:
        return self._last_refresh

    # Generation ------------------------------------------------------------

    def _build_pattern(self, location: Location) -> np.ndarray:
        base = np.array(
            [
                [pattern_ratio(location.location_type, weekday, hour) for hour in range(HOURS_PER_DAY)]
                for weekday in range(DAYS_PER_WEEK)
            ],
            dtype=float,
        )
        jitter = self._settings.occupancy_pattern_jitter
        factors = self._rng.uniform(1.0 - jitter, 1.0 + jitter, size=base.shape)
        return np.clip(base * factors, 0.0, 1.0)

    def _initial_records(self, now: datetime) -> dict[str, OccupancyRecord]:
        records: dict[str, OccupancyRecord] = {}
        jitter = self._settings.occupancy_pattern_jitter
        for location in self._catalog.list_locations():
            factor = self._rng.uniform(1.0 - jitter, 1.0 + jitter)
            count = math.floor(location.capacity * self.base_occupancy(location.location_id, now) * factor)
            count = self._clamp(count, location.capacity)
            records[location.location_id] = self._make_record(location, count, now, previous=None)
        return records

    @staticmethod
    def _clamp(count: int, capacity: int) -> int:
        return min(capacity, max(0, count))

    def _make_record(
        self,
        location: Location,
        count: int,
        now: datetime,
        previous: Optional[OccupancyRecord],
    ) -> OccupancyRecord:
        return OccupancyRecord(
            location_id=location.location_id,
            current_count=count,
            capacity=location.capacity,
            timestamp=now,
            floor_data=self._generate_floor_data(location, count),
            resources=self._generate_resources(
                location,
                previous.occupancy_ratio if previous is not None else 0.5,
                now,
            ),
        )

    def _generate_floor_data(self, location: Location, total: int) -> tuple[FloorOccupancy, ...]:
        if not location.floors:
            return ()

        floors = location.floors
        floor_capacity = location.capacity // len(floors)
        remaining = total
        result: list[FloorOccupancy] = []
        for floor in floors[:-1]:
            portion = self._rng.uniform(0.3, 1.0)
            floor_count = min(math.floor(remaining * portion), floor_capacity)
            result.append(FloorOccupancy(floor=floor, count=floor_count))
            remaining -= floor_count
        result.append(FloorOccupancy(floor=floors[-1], count=max(0, remaining)))
        return tuple(result)

    def _generate_resources(
        self,
        location: Location,
        occupancy_ratio: float,
        now: datetime,
    ) -> tuple[ResourceAvailability, ...]:
        resources: list[ResourceAvailability] = []

        if location.has_feature("computers"):
            if location.location_type == "lab":
                total = math.floor(location.capacity * 0.8)
            elif location.location_type in ("library", "study_area"):
                total = math.floor(location.capacity * 0.2)
            else:
                total = math.floor(location.capacity * 0.05)
            base_available = math.floor(total * (1 - occupancy_ratio * 1.2))
            offset = int(self._rng.integers(-2, 3))
            available = max(0, min(total, base_available + offset))
            resources.append(ResourceAvailability("computer", available, total))

        if location.has_feature("printers"):
            if location.location_type in ("lab", "printer"):
                total = location.capacity // 10
            else:
                total = min(3, location.capacity // 50)
            available = total
            if self._rng.random() > 0.7:
                available = max(0, total - int(self._rng.integers(0, 3)))
            resources.append(ResourceAvailability("printer", available, total))

        if location.has_feature("group_study"):
            total = location.capacity // 30
            ratio = _study_room_availability(now.hour) + self._rng.uniform(-0.1, 0.1)
            ratio = max(0.0, min(1.0, ratio))
            resources.append(ResourceAvailability("study_room", math.floor(total * ratio), total))

        return tuple(resources)

    # Refresh ---------------------------------------------------------------

    def refresh(self, now: Optional[datetime] = None) -> None:
        """Move every headcount toward its expected value for `now`."""
        with self._lock:
            now = now or self._clock()
            minutes_elapsed = max(0.0, (now - self._last_refresh).total_seconds() / 60.0)
            change_factor = min(1.0, self._settings.occupancy_change_rate_per_minute * minutes_elapsed)

            records: dict[str, OccupancyRecord] = {}
            for location in self._catalog.list_locations():
                previous = self._records.get(location.location_id)
                if previous is None:
                    continue
                target = self.base_occupancy(location.location_id, now) * location.capacity
                change = (target - previous.current_count) * change_factor
                offset = int(self._rng.integers(-5, 5))
                count = self._clamp(
                    math.floor(previous.current_count + change + offset),
                    location.capacity,
                )
                records[location.location_id] = self._make_record(location, count, now, previous)

            self._records = records
            self._last_refresh = now
        logger.debug(
            "Occupancy refreshed | minutes_elapsed=%.2f | locations=%s",
            minutes_elapsed,
            len(records),
        )

    # Queries ---------------------------------------------------------------

    def base_occupancy(self, location_id: str, when: datetime) -> float:
        location = self._catalog.get_location(location_id)
        if location is None or not is_open_at(location, when):
            return 0.0
        pattern = self._patterns.get(location_id)
        if pattern is not None:
            return float(pattern[when.weekday(), when.hour])
        return fallback_ratio(location.location_type, when.hour)

    def get_pattern(self, location_id: str) -> Optional[np.ndarray]:
        pattern = self._patterns.get(location_id)
        return None if pattern is None else pattern.copy()

    def get_occupancy(self, location_id: str) -> Optional[OccupancyRecord]:
        return self._records.get(location_id)

    def list_occupancy(self) -> list[OccupancyRecord]:
        return list(self._records.values())

    def _current_ratio(self, location_id: str, default: float) -> float:
        record = self._records.get(location_id)
        return record.occupancy_ratio if record is not None else default

    def get_heatmap(self) -> list[HeatmapEntry]:
        entries = []
        for record in self._records.values():
            location = self._catalog.get_location(record.location_id)
            entries.append(
                HeatmapEntry(
                    location_id=record.location_id,
                    name=location.name if location is not None else record.location_id,
                    occupancy=record.occupancy_ratio,
                )
            )
        return sorted(entries, key=lambda entry: entry.occupancy, reverse=True)

    def get_recommended_location(
        self,
        location_type: str,
        now: Optional[datetime] = None,
    ) -> Optional[LocationRecommendation]:
        now = now or self._clock()
        locations = self._catalog.locations_by_type(location_type)
        if not locations:
            return None

        open_locations = [location for location in locations if is_open_at(location, now)]
        if not open_locations:
            fallback = locations[0]
            return LocationRecommendation(
                location_id=fallback.location_id,
                name=fallback.name,
                reason="All locations are currently closed.",
                occupancy_percentage=0,
            )

        best = min(open_locations, key=lambda location: self._current_ratio(location.location_id, 1.0))
        percentage = ratio_to_percentage(self._current_ratio(best.location_id, 1.0))

        if percentage < 20:
            reason = "Nearly empty right now."
        elif percentage < 50:
            reason = "Plenty of space available."
        elif percentage < 70:
            reason = "Moderately busy but space available."
        else:
            reason = "The least busy option currently."

        if best.has_feature("quiet_zones"):
            reason += " Has quiet study zones."
        if best.has_feature("wifi") and best.has_feature("outlets"):
            reason += " Good WiFi and plenty of outlets."

        return LocationRecommendation(
            location_id=best.location_id,
            name=best.name,
            reason=reason,
            occupancy_percentage=percentage,
        )

    def get_recommended_time(
        self,
        location_id: str,
        now: Optional[datetime] = None,
    ) -> TimeRecommendation:
        now = now or self._clock()
        if self._catalog.get_location(location_id) is None:
            return TimeRecommendation(hour=12, reason="Location not found.", improvement_percentage=0)
        pattern = self._patterns.get(location_id)
        if pattern is None:
            return TimeRecommendation(hour=12, reason="No pattern data available.", improvement_percentage=0)

        row = pattern[now.weekday()]
        current_hour = now.hour
        current = float(row[current_hour])

        def better_hours(threshold: float) -> list[tuple[int, int]]:
            hours = []
            for offset in range(1, LOOKAHEAD_HOURS + 1):
                hour = (current_hour + offset) % HOURS_PER_DAY
                value = float(row[hour])
                if value < threshold:
                    hours.append((hour, int((1 - value / current) * 100 + 0.5)))
            return hours

        candidates = better_hours(current * STRICT_IMPROVEMENT_FACTOR)
        if not candidates:
            candidates = better_hours(current)
        if not candidates:
            if current < GREAT_TIME_THRESHOLD:
                return TimeRecommendation(
                    hour=current_hour,
                    reason="Now is already a great time to visit!",
                    improvement_percentage=0,
                )
            return TimeRecommendation(
                hour=current_hour,
                reason="Current occupancy levels are expected to continue throughout the day.",
                improvement_percentage=0,
            )

        best_hour, best_improvement = candidates[0]
        for hour, improvement in candidates[1:]:
            if improvement > best_improvement:
                best_hour, best_improvement = hour, improvement

        return TimeRecommendation(
            hour=best_hour,
            reason=f"{format_hour(best_hour)} would be {best_improvement}% less crowded than right now.",
            improvement_percentage=best_improvement,
        )

    def get_resource_availability(self, resource_type: str) -> list[ResourceSummary]:
        summaries = []
        for record in self._records.values():
            resource = record.resource(resource_type)
            if resource is None:
                continue
            location = self._catalog.get_location(record.location_id)
            summaries.append(
                ResourceSummary(
                    location_id=record.location_id,
                    name=location.name if location is not None else record.location_id,
                    available=resource.available,
                    total=resource.total,
                )
            )
        return sorted(summaries, key=lambda summary: summary.available, reverse=True)

    def get_random_insight(self, now: Optional[datetime] = None) -> Optional[str]:
        """Return one proactive tip, or None outside 08:00-22:59 or on a miss."""
        now = now or self._clock()
        hour = now.hour
        if hour < 8 or hour > 22:
            return None

        with self._lock:
            if self._rng.random() > self._settings.insight_probability:
                return None

            insights: list[str] = []

            for location_id in POPULAR_LOCATION_IDS:
                record = self._records.get(location_id)
                location = self._catalog.get_location(location_id)
                if record is not None and location is not None and record.occupancy_ratio < 0.3:
                    insights.append(
                        f"💡 Insider tip: {location.name} is unusually empty right now "
                        f"({record.occupancy_percentage}% capacity). Perfect time to grab a spot!"
                    )
                    break

            computers = [item for item in self.get_resource_availability("computer") if item.available > 5]
            if computers:
                insights.append(
                    f"💡 Computer tip: {computers[0].name} has {computers[0].available} open computers "
                    "right now. Most students don't realize this."
                )

            printers = [item for item in self.get_resource_availability("printer") if item.available > 0]
            if printers:
                insights.append(
                    f"💡 Printing tip: {printers[0].name} has {printers[0].available} available printers "
                    "with no waiting. Quick trip there could save you time!"
                )

            busy = [record for record in self._records.values() if record.occupancy_ratio > 0.8]
            if busy:
                busy_location = self._catalog.get_location(busy[0].location_id)
                if busy_location is not None:
                    alternatives = [
                        self._catalog.get_location(record.location_id)
                        for record in self._records.values()
                        if record.location_id != busy_location.location_id
                        and record.occupancy_ratio < 0.5
                        and self._same_type(record.location_id, busy_location.location_type)
                    ]
                    if alternatives:
                        insights.append(
                            f"💡 FYI: {busy_location.name} is very crowded right now. "
                            f"{alternatives[0].name} is a great alternative with plenty of space."
                        )

            if 11 <= hour < 13:
                dining = self._least_busy_of_types(("dining", "cafe"))
                if dining is not None:
                    insights.append(
                        f"💡 Lunch tip: At {format_hour(hour)}, {dining.name} has the shortest lines "
                        f"right now ({ratio_to_percentage(dining.occupancy)}% capacity)."
                    )

            if 16 <= hour < 20:
                study = self._least_busy_of_types(("library", "study_area"))
                if study is not None:
                    insights.append(
                        f"💡 Evening study tip: {study.name} is the least crowded study space "
                        f"right now ({ratio_to_percentage(study.occupancy)}% capacity)."
                    )

            basements = [
                location
                for location in self._catalog.list_locations()
                if location.placement is not None and "basement" in location.placement.floor.lower()
            ]
            if basements:
                gem = basements[int(self._rng.integers(0, len(basements)))]
                if self._rng.random() < 0.3:
                    insights.append(
                        f"💡 Hidden gem: Most students don't know about the study spaces in {gem.name}. "
                        "It's usually much quieter than main areas."
                    )

            if not insights:
                return None
            return insights[int(self._rng.integers(0, len(insights)))]

    def _same_type(self, location_id: str, location_type: str) -> bool:
        location = self._catalog.get_location(location_id)
        return location is not None and location.location_type == location_type

    def _least_busy_of_types(self, location_types: tuple[str, ...]) -> Optional[HeatmapEntry]:
        entries = [
            entry
            for entry in self.get_heatmap()
            if any(self._same_type(entry.location_id, location_type) for location_type in location_types)
        ]
        if not entries:
            return None
        return min(entries, key=lambda entry: entry.occupancy)


class OccupancyRefresher:
    """Background thread that refreshes the simulator on a fixed interval.

    Housekeeping callables run on the same tick after each refresh.
    """

    def __init__(
        self,
        simulator: OccupancySimulator,
        interval_seconds: float,
        housekeeping: Sequence[Callable[[], object]] = (),
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._simulator = simulator
        self._housekeeping = tuple(housekeeping)
        self._interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="occupancy-refresher",
            daemon=True,
        )
        self._thread.start()
        logger.info("Occupancy refresher started | interval_seconds=%s", self._interval_seconds)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Occupancy refresher stopped")

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval_seconds):
            try:
                self._simulator.refresh()
            except Exception:
                logger.exception("Occupancy refresh failed")
            for task in self._housekeeping:
                try:
                    task()
                except Exception:
                    logger.exception("Housekeeping task failed | task=%s", getattr(task, "__qualname__", task))
