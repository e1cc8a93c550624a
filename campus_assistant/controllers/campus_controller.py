"""HTTP controller layer for campus occupancy and recommendations."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from campus_assistant.controllers.dependencies import get_catalog, get_simulator
from campus_assistant.domain.catalog import CampusCatalog
from campus_assistant.domain.models import LOCATION_TYPES, Location, OccupancyRecord
from campus_assistant.services.occupancy_service import OccupancySimulator


router = APIRouter(prefix="/campus", tags=["campus"])

RESOURCE_TYPES = ("computer", "printer", "study_room")


class LocationResponse(BaseModel):
    location_id: str
    name: str
    location_type: str
    capacity: int = Field(gt=0)
    open: str
    close: str
    floors: list[str]
    features: list[str]
    building: Optional[str] = None
    floor: Optional[str] = None

    @classmethod
    def from_location(cls, location: Location) -> "LocationResponse":
        return cls(
            location_id=location.location_id,
            name=location.name,
            location_type=location.location_type,
            capacity=location.capacity,
            open=location.open_hours.open,
            close=location.open_hours.close,
            floors=list(location.floors),
            features=list(location.features),
            building=location.placement.building if location.placement else None,
            floor=location.placement.floor if location.placement else None,
        )


class FloorResponse(BaseModel):
    floor: str
    count: int = Field(ge=0)


class ResourceResponse(BaseModel):
    resource_type: str
    available: int = Field(ge=0)
    total: int = Field(ge=0)


class OccupancyResponse(BaseModel):
    location_id: str
    current_count: int = Field(ge=0)
    capacity: int = Field(gt=0)
    occupancy_percentage: int = Field(ge=0, le=100)
    timestamp: datetime
    floor_data: list[FloorResponse]
    resources: list[ResourceResponse]

    @classmethod
    def from_record(cls, record: OccupancyRecord) -> "OccupancyResponse":
        return cls(
            location_id=record.location_id,
            current_count=record.current_count,
            capacity=record.capacity,
            occupancy_percentage=record.occupancy_percentage,
            timestamp=record.timestamp,
            floor_data=[FloorResponse(floor=item.floor, count=item.count) for item in record.floor_data],
            resources=[
                ResourceResponse(resource_type=item.resource_type, available=item.available, total=item.total)
                for item in record.resources
            ],
        )


class HeatmapEntryResponse(BaseModel):
    location_id: str
    name: str
    occupancy: float = Field(ge=0.0, le=1.0)


class LocationRecommendationResponse(BaseModel):
    location_id: str
    name: str
    reason: str
    occupancy_percentage: int = Field(ge=0, le=100)


class TimeRecommendationResponse(BaseModel):
    hour: int = Field(ge=0, le=23)
    reason: str
    improvement_percentage: int


class ResourceSummaryResponse(BaseModel):
    location_id: str
    name: str
    available: int = Field(ge=0)
    total: int = Field(ge=0)


@router.get("/locations", response_model=list[LocationResponse], status_code=status.HTTP_200_OK)
async def list_locations(
    catalog: CampusCatalog = Depends(get_catalog),
) -> list[LocationResponse]:
    return [LocationResponse.from_location(location) for location in catalog.list_locations()]


@router.get("/occupancy", response_model=list[OccupancyResponse], status_code=status.HTTP_200_OK)
async def list_occupancy(
    simulator: OccupancySimulator = Depends(get_simulator),
) -> list[OccupancyResponse]:
    return [OccupancyResponse.from_record(record) for record in simulator.list_occupancy()]


@router.get("/occupancy/{location_id}", response_model=OccupancyResponse, status_code=status.HTTP_200_OK)
async def get_occupancy(
    location_id: str,
    simulator: OccupancySimulator = Depends(get_simulator),
) -> OccupancyResponse:
    record = simulator.get_occupancy(location_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Location not found: {location_id}",
        )
    return OccupancyResponse.from_record(record)


@router.get("/heatmap", response_model=list[HeatmapEntryResponse], status_code=status.HTTP_200_OK)
async def get_heatmap(
    simulator: OccupancySimulator = Depends(get_simulator),
) -> list[HeatmapEntryResponse]:
    return [
        HeatmapEntryResponse(location_id=entry.location_id, name=entry.name, occupancy=entry.occupancy)
        for entry in simulator.get_heatmap()
    ]


@router.get(
    "/recommendations/location/{location_type}",
    response_model=LocationRecommendationResponse,
    status_code=status.HTTP_200_OK,
)
async def recommend_location(
    location_type: str,
    simulator: OccupancySimulator = Depends(get_simulator),
) -> LocationRecommendationResponse:
    if location_type not in LOCATION_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"location_type must be one of {', '.join(LOCATION_TYPES)}",
        )
    recommendation = simulator.get_recommended_location(location_type)
    if recommendation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No locations of type {location_type}",
        )
    return LocationRecommendationResponse(
        location_id=recommendation.location_id,
        name=recommendation.name,
        reason=recommendation.reason,
        occupancy_percentage=recommendation.occupancy_percentage,
    )


@router.get(
    "/recommendations/time/{location_id}",
    response_model=TimeRecommendationResponse,
    status_code=status.HTTP_200_OK,
)
async def recommend_time(
    location_id: str,
    simulator: OccupancySimulator = Depends(get_simulator),
) -> TimeRecommendationResponse:
    if simulator.catalog.get_location(location_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Location not found: {location_id}",
        )
    recommendation = simulator.get_recommended_time(location_id)
    return TimeRecommendationResponse(
        hour=recommendation.hour,
        reason=recommendation.reason,
        improvement_percentage=recommendation.improvement_percentage,
    )


@router.get(
    "/resources/{resource_type}",
    response_model=list[ResourceSummaryResponse],
    status_code=status.HTTP_200_OK,
)
async def resource_availability(
    resource_type: str,
    simulator: OccupancySimulator = Depends(get_simulator),
) -> list[ResourceSummaryResponse]:
    if resource_type not in RESOURCE_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"resource_type must be one of {', '.join(RESOURCE_TYPES)}",
        )
    return [
        ResourceSummaryResponse(
            location_id=item.location_id,
            name=item.name,
            available=item.available,
            total=item.total,
        )
        for item in simulator.get_resource_availability(resource_type)
    ]
