"""
app.py: FastAPI application factory and lifecycle.

Wires the campus catalog, occupancy simulator, booking ledger and chat
services onto app.state and registers the HTTP and WebSocket routers.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from campus_assistant.controllers.booking_controller import router as booking_router
from campus_assistant.controllers.campus_controller import router as campus_router
from campus_assistant.controllers.chat_controller import router as chat_router
from campus_assistant.domain.catalog import CampusCatalog
from campus_assistant.domain.constraints import policy_from_settings
from campus_assistant.repository.booking_ledger import InMemoryBookingLedger
from campus_assistant.repository.chat_repository import ChatRepository
from campus_assistant.services.booking_dialogue import BookingDialogueService
from campus_assistant.services.chat_service import ChatService
from campus_assistant.services.insight_service import CampusInsightService
from campus_assistant.services.llm_client import LanguageModelClient
from campus_assistant.services.occupancy_service import OccupancyRefresher, OccupancySimulator
from campus_assistant.services.session_store import BookingSessionStore
from campus_assistant.utils.config import Settings, get_settings
from campus_assistant.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every service is constructed here and reached through app.state, so tests
    can pass their own settings (temporary database, fixed seed).
    """
    settings = settings or get_settings()
    # Fails fast on inconsistent booking bounds.
    policy = policy_from_settings(settings)

    catalog = CampusCatalog()
    simulator = OccupancySimulator(catalog=catalog, settings=settings)
    booking_ledger = InMemoryBookingLedger(catalog=catalog)
    session_store = BookingSessionStore(policy.session_ttl_seconds)
    refresher = OccupancyRefresher(
        simulator,
        settings.occupancy_refresh_interval_seconds,
        housekeeping=(session_store.prune_expired,),
    )
    booking_dialogue = BookingDialogueService(
        ledger=booking_ledger,
        store=session_store,
        settings=settings,
    )
    insight_service = CampusInsightService(simulator, settings=settings)
    repository = ChatRepository(settings)
    chat_service = ChatService(
        repository=repository,
        booking_dialogue=booking_dialogue,
        insight_service=insight_service,
        llm_client=LanguageModelClient(settings=settings),
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _startup(app)
        try:
            yield
        finally:
            _shutdown(app)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(chat_router)
    app.include_router(campus_router)
    app.include_router(booking_router)

    app.state.settings = settings
    app.state.catalog = catalog
    app.state.simulator = simulator
    app.state.refresher = refresher
    app.state.booking_ledger = booking_ledger
    app.state.session_store = session_store
    app.state.booking_dialogue = booking_dialogue
    app.state.insight_service = insight_service
    app.state.repository = repository
    app.state.chat_service = chat_service

    return app


def _startup(app: FastAPI) -> None:
    """Schema first, then the background refresh loop."""
    settings: Settings = app.state.settings
    repository: ChatRepository = app.state.repository
    refresher: OccupancyRefresher = app.state.refresher

    logger.info("Startup: initializing chat database schema")
    repository.initialize_database()

    logger.info("Startup: starting occupancy refresher")
    refresher.start()

    logger.info(
        "Startup complete | app=%s | version=%s | language_model=%s",
        settings.app_name,
        settings.app_version,
        "enabled" if settings.llm_api_key else "disabled",
    )


def _shutdown(app: FastAPI) -> None:
    refresher: OccupancyRefresher = app.state.refresher
    session_store: BookingSessionStore = app.state.session_store

    refresher.stop()
    pruned = session_store.prune_expired()
    logger.info(
        "Shutdown complete | expired_booking_sessions=%s | open_booking_sessions=%s",
        pruned,
        session_store.active_sessions(),
    )


# Module-level app object for uvicorn
app = create_app()
