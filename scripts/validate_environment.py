#!/usr/bin/env python3
"""Validate local campus assistant environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from campus_assistant.domain.constraints import policy_from_settings
from campus_assistant.repository.booking_ledger import InMemoryBookingLedger
from campus_assistant.repository.chat_repository import ChatRepository
from campus_assistant.services.occupancy_service import OccupancySimulator
from campus_assistant.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="campus-assistant-env-")

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    package_specs = ["fastapi", "uvicorn", "pydantic", "numpy", "requests", "httpx", "pytest"]
    import_errors: list[str] = []
    for module_name in package_specs:
        try:
            importlib.import_module(module_name)
        except ImportError as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        base_settings = get_settings()
        validation_settings = replace(
            base_settings,
            database_path=Path(temp_dir) / "campus_assistant_validation.db",
            occupancy_random_seed=7,
        )

        # CHECK 3: Booking policy
        try:
            policy_from_settings(validation_settings)
            ok, line = _print_result("Booking policy bounds", True)
        except ValueError as exc:
            ok, line = _print_result("Booking policy bounds", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Chat database initialization
        try:
            repository = ChatRepository(validation_settings)
            repository.initialize_database()
            ok, line = _print_result("Chat database initialization", True)
        except RuntimeError as exc:
            ok, line = _print_result("Chat database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Occupancy simulation stays within capacity
        try:
            simulator = OccupancySimulator(settings=validation_settings)
            simulator.refresh(datetime.now())
            records = simulator.list_occupancy()
            if not records:
                raise RuntimeError("no occupancy records generated")
            for record in records:
                if not 0 <= record.current_count <= record.capacity:
                    raise RuntimeError(f"{record.location_id} out of bounds: {record.current_count}")
            ok, line = _print_result("Occupancy simulation", True, f": {len(records)} locations")
        except RuntimeError as exc:
            ok, line = _print_result("Occupancy simulation", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 6: Study room catalog
        ledger = InMemoryBookingLedger()
        room_count = len(ledger.catalog.list_rooms())
        ok, line = _print_result(
            "Study room catalog",
            room_count > 0,
            f": {room_count} rooms" if room_count else "no active rooms",
        )
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Campus Assistant Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
