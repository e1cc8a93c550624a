from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timedelta

from campus_assistant.domain.models import UserQuery
from campus_assistant.services.insight_service import CampusInsightService, is_campus_query
from campus_assistant.services.occupancy_service import OccupancySimulator
from campus_assistant.utils.config import get_settings


# Monday
MONDAY_NOON = datetime(2026, 3, 2, 12, 0)


def _build_test_settings(tmp_path, filename: str, **overrides):
    get_settings.cache_clear()
    base = get_settings()
    values = {
        "database_path": tmp_path / filename,
        "occupancy_random_seed": 7,
        "occupancy_pattern_jitter": 0.0,
        "insight_probability": 1.0,
    }
    values.update(overrides)
    return replace(base, **values)


def _build_service(tmp_path, **overrides) -> CampusInsightService:
    settings = _build_test_settings(tmp_path, "insight.db", **overrides)
    simulator = OccupancySimulator(settings=settings, clock=lambda: MONDAY_NOON)
    return CampusInsightService(simulator, settings=settings, clock=lambda: MONDAY_NOON)


def _ask(service: CampusInsightService, text: str, user_type: str = "student"):
    return service.handle_campus_query(
        UserQuery(text=text, user_id="u1", session_id="s1", user_type=user_type),
        now=MONDAY_NOON,
    )


def test_campus_query_detection() -> None:
    assert is_campus_query("Is the library busy right now?")
    assert is_campus_query("Where can I study?")
    assert is_campus_query("any quiet spot in the commons")
    assert not is_campus_query("hello there")
    assert not is_campus_query("how do I register for courses")


def test_library_question_recommends_least_busy_library(tmp_path) -> None:
    service = _build_service(tmp_path)
    reply = _ask(service, "Is the library busy right now?", user_type="faculty")

    assert reply.intent == "campus_library_recommendation"
    assert reply.category == "faculty"
    assert reply.sources == ("Campus Ambient Intelligence System",)
    assert "Goddard Library" in reply.text
    assert "% capacity" in reply.text


def test_time_question_uses_pattern_analysis(tmp_path) -> None:
    service = _build_service(tmp_path)
    reply = _ask(service, "When is the best time to get coffee at the cafe?")

    assert reply.intent == "campus_time_recommendation"
    assert reply.sources == ("Campus Time Pattern Analysis",)
    assert "Academic Commons Café" in reply.text


def test_printer_question_lists_printers(tmp_path) -> None:
    service = _build_service(tmp_path)
    reply = _ask(service, "Are any printers available?")

    assert reply.intent == "campus_printer_availability"
    assert reply.sources == ("Campus Resource Monitoring",)
    assert reply.text.startswith("Here's where you can find available printers right now:")
    assert "1. " in reply.text


def test_computer_question_names_best_lab(tmp_path) -> None:
    service = _build_service(tmp_path)
    reply = _ask(service, "Is there a computer available?")

    assert reply.intent == "campus_computer_availability"
    assert "has the most computers available right now" in reply.text


def test_unmatched_campus_question_lists_open_study_spaces(tmp_path) -> None:
    service = _build_service(tmp_path)
    reply = _ask(service, "Is the hall crowded?")

    assert reply.intent == "campus_general_occupancy"
    assert reply.text.startswith("Here are the least crowded study spaces on campus right now:")
    assert reply.text.count("% capacity") == 3


def test_proactive_insight_respects_cooldown(tmp_path) -> None:
    service = _build_service(tmp_path)

    first = service.get_proactive_insight("s1", now=MONDAY_NOON)
    assert first is not None and first.startswith("💡")
    assert service.get_proactive_insight("s1", now=MONDAY_NOON + timedelta(seconds=60)) is None
    assert service.get_proactive_insight("s2", now=MONDAY_NOON + timedelta(seconds=60)) is not None
    assert service.get_proactive_insight("s1", now=MONDAY_NOON + timedelta(seconds=301)) is not None


def test_proactive_insight_outside_hours_is_silent(tmp_path) -> None:
    service = _build_service(tmp_path)
    assert service.get_proactive_insight("s1", now=datetime(2026, 3, 2, 6, 0)) is None
    assert service.tracked_sessions() == 0


def test_stale_sessions_are_pruned(tmp_path) -> None:
    service = _build_service(
        tmp_path,
        insight_session_prune_threshold=2,
        insight_session_retention_seconds=60,
    )
    service.get_proactive_insight("a", now=MONDAY_NOON)
    service.get_proactive_insight("b", now=MONDAY_NOON)
    assert service.tracked_sessions() == 2

    service.get_proactive_insight("c", now=MONDAY_NOON + timedelta(seconds=120))
    assert service.tracked_sessions() == 1


class GatedSimulator(OccupancySimulator):
    """Holds every tip until two requests are building one at once."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.gate = threading.Barrier(2)

    def get_random_insight(self, now=None):
        self.gate.wait(timeout=5)
        return super().get_random_insight(now)


def test_concurrent_requests_share_one_cooldown(tmp_path) -> None:
    settings = _build_test_settings(tmp_path, "insight_race.db")
    simulator = GatedSimulator(settings=settings, clock=lambda: MONDAY_NOON)
    service = CampusInsightService(simulator, settings=settings, clock=lambda: MONDAY_NOON)
    results = []

    def request() -> None:
        results.append(service.get_proactive_insight("s1", now=MONDAY_NOON))

    workers = [threading.Thread(target=request) for _ in range(2)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join(timeout=5)

    assert len(results) == 2
    assert sum(result is not None for result in results) == 1
