"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from campus_assistant.domain.catalog import CampusCatalog
from campus_assistant.repository.booking_ledger import BookingLedger
from campus_assistant.services.chat_service import ChatService
from campus_assistant.services.occupancy_service import OccupancySimulator


def _require_state(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_chat_service(request: Request) -> ChatService:
    return _require_state(request, "chat_service", "Chat service")


def get_simulator(request: Request) -> OccupancySimulator:
    return _require_state(request, "simulator", "Occupancy simulator")


def get_booking_ledger(request: Request) -> BookingLedger:
    return _require_state(request, "booking_ledger", "Booking ledger")


def get_catalog(request: Request) -> CampusCatalog:
    return _require_state(request, "catalog", "Campus catalog")
