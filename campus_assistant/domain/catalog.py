"""Static catalog of campus locations and bookable study rooms."""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from campus_assistant.domain.models import Location, OpenHours, Placement, StudyRoom


CAMPUS_LOCATIONS: tuple[Location, ...] = (
    Location(
        location_id="goddard-library",
        name="Goddard Library",
        location_type="library",
        capacity=500,
        floors=("Main Floor", "Upper Level", "Basement"),
        open_hours=OpenHours(open="08:00", close="24:00"),
        features=("wifi", "outlets", "quiet_zones", "group_study"),
        placement=Placement(building="Goddard Library", floor="All Floors"),
    ),
    Location(
        location_id="goddard-library-basement",
        name="Goddard Library Basement",
        location_type="study_area",
        capacity=120,
        open_hours=OpenHours(open="08:00", close="24:00"),
        features=("wifi", "outlets", "quiet_zones", "private_carrels"),
        placement=Placement(building="Goddard Library", floor="Basement"),
    ),
    Location(
        location_id="academic-commons",
        name="Academic Commons",
        location_type="study_area",
        capacity=200,
        open_hours=OpenHours(open="08:00", close="22:00"),
        features=("wifi", "outlets", "group_study"),
        placement=Placement(building="Academic Commons", floor="Main Floor"),
    ),
    Location(
        location_id="academic-commons-cafe",
        name="Academic Commons Café",
        location_type="cafe",
        capacity=75,
        open_hours=OpenHours(open="07:30", close="19:00"),
        features=("wifi", "food", "coffee"),
        placement=Placement(building="Academic Commons", floor="Main Floor"),
    ),
    Location(
        location_id="kneller-athletic-center",
        name="Kneller Athletic Center",
        location_type="study_area",
        capacity=60,
        open_hours=OpenHours(open="08:00", close="21:00"),
        features=("wifi", "quiet_zones"),
        placement=Placement(building="Kneller Athletic Center", floor="Main Floor"),
    ),
    Location(
        location_id="computer-lab-main",
        name="Main Computer Lab",
        location_type="lab",
        capacity=50,
        open_hours=OpenHours(open="08:00", close="22:00"),
        features=("computers", "printers", "scanners", "specialized_software"),
        placement=Placement(building="Science Building", floor="2nd Floor"),
    ),
    Location(
        location_id="computer-lab-basement",
        name="Basement Computer Lab",
        location_type="lab",
        capacity=30,
        open_hours=OpenHours(open="08:00", close="20:00"),
        features=("computers", "printers", "quiet"),
        placement=Placement(building="Science Building", floor="Basement"),
    ),
    Location(
        location_id="university-center-dining",
        name="University Center Dining Hall",
        location_type="dining",
        capacity=300,
        open_hours=OpenHours(open="07:00", close="21:00"),
        features=("food", "wifi"),
        placement=Placement(building="University Center", floor="Main Floor"),
    ),
    Location(
        location_id="science-building-cafe",
        name="Science Building Café",
        location_type="cafe",
        capacity=40,
        open_hours=OpenHours(open="08:00", close="17:00"),
        features=("coffee", "snacks", "wifi"),
        placement=Placement(building="Science Building", floor="1st Floor"),
    ),
    Location(
        location_id="printing-center",
        name="Printing Center",
        location_type="printer",
        capacity=25,
        open_hours=OpenHours(open="08:00", close="20:00"),
        features=("printers", "copiers", "scanners"),
        placement=Placement(building="University Center", floor="2nd Floor"),
    ),
)


STUDY_ROOMS: tuple[StudyRoom, ...] = (
    StudyRoom(1, "101", "Library", 1, 4, ("whiteboard", "power outlets")),
    StudyRoom(2, "102", "Library", 1, 8, ("whiteboard", "projector", "power outlets")),
    StudyRoom(3, "201", "Library", 2, 2, ("power outlets",)),
    StudyRoom(4, "202", "Library", 2, 6, ("whiteboard", "power outlets", "monitors")),
    StudyRoom(5, "301", "Science Center", 3, 4, ("whiteboard", "power outlets")),
    StudyRoom(6, "302", "Science Center", 3, 10, ("whiteboard", "projector", "video conferencing")),
    StudyRoom(7, "401", "University Center", 4, 6, ("whiteboard", "power outlets", "large tables")),
)


def _clock_minutes(value: str) -> tuple[int, int]:
    hours, minutes = (int(part) for part in value.split(":"))
    return hours, minutes


def is_open_at(location: Location, when: datetime) -> bool:
    """Return whether `location` is open at the wall-clock time of `when`.

    A close time of 24:00 or later (or exactly 00:00) wraps past midnight.
    """
    open_hour, open_minute = _clock_minutes(location.open_hours.open)
    close_hour, close_minute = _clock_minutes(location.open_hours.close)

    open_time = open_hour * 60 + open_minute
    close_time = close_hour * 60 + close_minute
    current_time = when.hour * 60 + when.minute

    if close_hour >= 24 or (close_hour == 0 and close_minute == 0):
        wrapped_close = (close_hour % 24) * 60 + close_minute
        return current_time >= open_time or current_time < wrapped_close

    return open_time <= current_time < close_time


class CampusCatalog:
    """Read-only lookups over campus locations and study rooms."""

    def __init__(
        self,
        locations: Optional[Iterable[Location]] = None,
        rooms: Optional[Iterable[StudyRoom]] = None,
    ) -> None:
        self._locations: tuple[Location, ...] = tuple(
            CAMPUS_LOCATIONS if locations is None else locations
        )
        self._rooms: tuple[StudyRoom, ...] = tuple(STUDY_ROOMS if rooms is None else rooms)
        self._location_by_id = {location.location_id: location for location in self._locations}
        self._room_by_id = {room.room_id: room for room in self._rooms}

    # Locations -------------------------------------------------------------

    def get_location(self, location_id: str) -> Optional[Location]:
        return self._location_by_id.get(location_id)

    def list_locations(self) -> list[Location]:
        return list(self._locations)

    def locations_by_type(self, location_type: str) -> list[Location]:
        return [location for location in self._locations if location.location_type == location_type]

    def open_locations(self, when: datetime) -> list[Location]:
        return [location for location in self._locations if is_open_at(location, when)]

    # Rooms -----------------------------------------------------------------

    def get_room(self, room_id: int) -> Optional[StudyRoom]:
        return self._room_by_id.get(room_id)

    def list_rooms(self) -> list[StudyRoom]:
        """Active rooms ordered by building, floor and room number."""
        return sorted(
            (room for room in self._rooms if room.is_active),
            key=lambda room: (room.building, room.floor, room.room_number),
        )
