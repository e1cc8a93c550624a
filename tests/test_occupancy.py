from __future__ import annotations

import time
from dataclasses import replace
from datetime import datetime, timedelta

import numpy as np
import pytest

from campus_assistant.services.occupancy_service import (
    OccupancyRefresher,
    OccupancySimulator,
    pattern_ratio,
)
from campus_assistant.utils.config import get_settings


# Monday
MONDAY_10AM = datetime(2026, 3, 2, 10, 0)


def _build_test_settings(tmp_path, filename: str, **overrides):
    get_settings.cache_clear()
    base = get_settings()
    values = {
        "database_path": tmp_path / filename,
        "occupancy_random_seed": 42,
        "occupancy_pattern_jitter": 0.0,
    }
    values.update(overrides)
    return replace(base, **values)


def _build_simulator(tmp_path, now: datetime = MONDAY_10AM, **overrides) -> OccupancySimulator:
    settings = _build_test_settings(tmp_path, "occupancy.db", **overrides)
    return OccupancySimulator(settings=settings, clock=lambda: now)


def test_pattern_curves() -> None:
    assert pattern_ratio("library", 0, 14) == 0.7
    assert pattern_ratio("library", 5, 14) == pytest.approx(0.49)
    assert pattern_ratio("lab", 6, 20) == pytest.approx(0.27)
    assert pattern_ratio("lab", 5, 20) == pytest.approx(0.45)
    assert pattern_ratio("dining", 2, 12) == 0.9
    assert pattern_ratio("cafe", 2, 20) == 0.0


def test_pattern_matrix_shape_and_bounds(tmp_path) -> None:
    simulator = _build_simulator(tmp_path, occupancy_pattern_jitter=0.1)
    pattern = simulator.get_pattern("goddard-library")
    assert pattern.shape == (7, 24)
    assert np.all(pattern >= 0.0) and np.all(pattern <= 1.0)

    pattern[0, 0] = 99.0
    assert simulator.get_pattern("goddard-library")[0, 0] != 99.0
    assert simulator.get_pattern("nowhere") is None


def test_counts_stay_within_capacity_across_refreshes(tmp_path) -> None:
    simulator = _build_simulator(tmp_path, occupancy_pattern_jitter=0.1)
    now = MONDAY_10AM
    for step in range(200):
        now += timedelta(minutes=37 * (step % 5 + 1))
        simulator.refresh(now)
        for record in simulator.list_occupancy():
            assert 0 <= record.current_count <= record.capacity
            if record.floor_data:
                assert sum(floor.count for floor in record.floor_data) == record.current_count
            for resource in record.resources:
                assert 0 <= resource.available <= resource.total


def test_closed_location_starts_and_drifts_to_empty(tmp_path) -> None:
    late = datetime(2026, 3, 2, 23, 0)
    simulator = _build_simulator(tmp_path, now=late)
    assert simulator.get_occupancy("university-center-dining").current_count == 0
    assert simulator.base_occupancy("university-center-dining", late) == 0.0

    open_simulator = _build_simulator(tmp_path)
    open_simulator.refresh(late + timedelta(minutes=30))
    # A large gap moves the whole way to the target, plus at most a small offset.
    assert open_simulator.get_occupancy("university-center-dining").current_count <= 5


def test_heatmap_is_sorted_busiest_first(tmp_path) -> None:
    simulator = _build_simulator(tmp_path)
    heatmap = simulator.get_heatmap()
    assert len(heatmap) == len(simulator.catalog.list_locations())
    occupancies = [entry.occupancy for entry in heatmap]
    assert occupancies == sorted(occupancies, reverse=True)


def test_recommended_location(tmp_path) -> None:
    simulator = _build_simulator(tmp_path)
    recommendation = simulator.get_recommended_location("study_area", MONDAY_10AM)
    assert recommendation is not None
    candidates = {
        location.location_id: simulator.get_occupancy(location.location_id).occupancy_ratio
        for location in simulator.catalog.locations_by_type("study_area")
    }
    assert candidates[recommendation.location_id] == min(candidates.values())
    assert 0 <= recommendation.occupancy_percentage <= 100

    assert simulator.get_recommended_location("spaceport", MONDAY_10AM) is None

    closed = simulator.get_recommended_location("library", datetime(2026, 3, 2, 3, 0))
    assert closed.reason == "All locations are currently closed."
    assert closed.occupancy_percentage == 0

    dining = simulator.get_recommended_location("dining", datetime(2026, 3, 2, 3, 0))
    assert dining.location_id == simulator.catalog.locations_by_type("dining")[0].location_id
    assert dining.name == "University Center Dining Hall"
    assert dining.reason == "All locations are currently closed."
    assert dining.occupancy_percentage == 0


def test_recommended_time_prefers_largest_drop(tmp_path) -> None:
    simulator = _build_simulator(tmp_path)

    evening = simulator.get_recommended_time("goddard-library", datetime(2026, 3, 2, 17, 0))
    assert evening.hour == 0
    assert evening.improvement_percentage == 100
    assert "12AM would be 100% less crowded" in evening.reason

    # Lookahead wraps past midnight.
    late = simulator.get_recommended_time("goddard-library", datetime(2026, 3, 2, 20, 0))
    assert late.hour == 0


def test_recommended_time_when_nothing_is_better(tmp_path) -> None:
    simulator = _build_simulator(tmp_path)
    quiet = simulator.get_recommended_time("printing-center", datetime(2026, 3, 2, 21, 0))
    assert quiet.reason == "Now is already a great time to visit!"
    assert quiet.improvement_percentage == 0
    assert quiet.hour == 21

    missing = simulator.get_recommended_time("nowhere", MONDAY_10AM)
    assert (missing.hour, missing.reason, missing.improvement_percentage) == (12, "Location not found.", 0)


def test_resource_availability_sorted_by_available(tmp_path) -> None:
    simulator = _build_simulator(tmp_path)
    computers = simulator.get_resource_availability("computer")
    assert computers
    assert [item.available for item in computers] == sorted((item.available for item in computers), reverse=True)
    assert {item.location_id for item in computers} >= {"computer-lab-main", "computer-lab-basement"}
    assert simulator.get_resource_availability("telescope") == []


def test_random_insight_gates(tmp_path) -> None:
    always = _build_simulator(tmp_path, insight_probability=1.0)
    assert always.get_random_insight(datetime(2026, 3, 2, 3, 0)) is None
    assert always.get_random_insight(datetime(2026, 3, 2, 23, 30)) is None

    tip = always.get_random_insight(datetime(2026, 3, 2, 12, 0))
    assert tip is not None and tip.startswith("💡")

    never = _build_simulator(tmp_path, insight_probability=0.0)
    assert never.get_random_insight(datetime(2026, 3, 2, 12, 0)) is None


def test_refresher_runs_in_background(tmp_path) -> None:
    settings = _build_test_settings(tmp_path, "refresher.db")
    simulator = OccupancySimulator(settings=settings)
    started_at = simulator.last_refresh

    refresher = OccupancyRefresher(simulator, interval_seconds=0.01)
    refresher.start()
    try:
        deadline = time.monotonic() + 2.0
        while simulator.last_refresh == started_at and time.monotonic() < deadline:
            time.sleep(0.01)
        assert refresher.is_running
    finally:
        refresher.stop()

    assert simulator.last_refresh > started_at
    assert not refresher.is_running

    with pytest.raises(ValueError):
        OccupancyRefresher(simulator, interval_seconds=0)


def test_refresher_runs_housekeeping_each_tick(tmp_path) -> None:
    settings = _build_test_settings(tmp_path, "housekeeping.db")
    simulator = OccupancySimulator(settings=settings)
    ticks = []

    def failing() -> None:
        raise RuntimeError("sweep failed")

    refresher = OccupancyRefresher(simulator, interval_seconds=0.01, housekeeping=(failing, lambda: ticks.append(1)))
    refresher.start()
    try:
        deadline = time.monotonic() + 2.0
        while len(ticks) < 2 and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        refresher.stop()

    # A failing task neither stops the loop nor skips the tasks after it.
    assert len(ticks) >= 2
