"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_optional_str(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _env_optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path

    occupancy_refresh_interval_seconds: float
    occupancy_random_seed: Optional[int]
    occupancy_pattern_jitter: float
    occupancy_change_rate_per_minute: float

    insight_probability: float
    insight_cooldown_seconds: int
    insight_session_retention_seconds: int
    insight_session_prune_threshold: int

    booking_min_attendees: int
    booking_max_attendees: int
    booking_min_duration_hours: float
    booking_max_duration_hours: float
    booking_max_days_ahead: int
    booking_same_day_lead_minutes: int
    booking_session_ttl_seconds: int

    llm_api_key: Optional[str]
    llm_api_url: str
    llm_api_version: str
    llm_model: str
    llm_timeout_seconds: float
    llm_max_tokens: int
    llm_temperature: float

    chat_history_limit: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; call `cache_clear()` to reload."""
    return Settings(
        app_name=_env_str("APP_NAME", "Campus Assistant"),
        app_version=_env_str("APP_VERSION", "1.0.0"),
        log_level=_env_str("LOG_LEVEL", "INFO"),
        database_path=Path(
            _env_str("DATABASE_PATH", str(PROJECT_ROOT / "data" / "campus_assistant.db"))
        ),
        occupancy_refresh_interval_seconds=_env_float("OCCUPANCY_REFRESH_INTERVAL_SECONDS", 60.0),
        occupancy_random_seed=_env_optional_int("OCCUPANCY_RANDOM_SEED"),
        occupancy_pattern_jitter=_env_float("OCCUPANCY_PATTERN_JITTER", 0.10),
        occupancy_change_rate_per_minute=_env_float("OCCUPANCY_CHANGE_RATE_PER_MINUTE", 0.10),
        insight_probability=_env_float("INSIGHT_PROBABILITY", 0.15),
        insight_cooldown_seconds=_env_int("INSIGHT_COOLDOWN_SECONDS", 5 * 60),
        insight_session_retention_seconds=_env_int("INSIGHT_SESSION_RETENTION_SECONDS", 30 * 60),
        insight_session_prune_threshold=_env_int("INSIGHT_SESSION_PRUNE_THRESHOLD", 100),
        booking_min_attendees=_env_int("BOOKING_MIN_ATTENDEES", 1),
        booking_max_attendees=_env_int("BOOKING_MAX_ATTENDEES", 20),
        booking_min_duration_hours=_env_float("BOOKING_MIN_DURATION_HOURS", 0.5),
        booking_max_duration_hours=_env_float("BOOKING_MAX_DURATION_HOURS", 4.0),
        booking_max_days_ahead=_env_int("BOOKING_MAX_DAYS_AHEAD", 30),
        booking_same_day_lead_minutes=_env_int("BOOKING_SAME_DAY_LEAD_MINUTES", 15),
        booking_session_ttl_seconds=_env_int("BOOKING_SESSION_TTL_SECONDS", 30 * 60),
        llm_api_key=_env_optional_str("LLM_API_KEY"),
        llm_api_url=_env_str("LLM_API_URL", "https://api.anthropic.com/v1/messages"),
        llm_api_version=_env_str("LLM_API_VERSION", "2023-06-01"),
        llm_model=_env_str("LLM_MODEL", "claude-3-haiku-20240307"),
        llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", 15.0),
        llm_max_tokens=_env_int("LLM_MAX_TOKENS", 500),
        llm_temperature=_env_float("LLM_TEMPERATURE", 0.7),
        chat_history_limit=_env_int("CHAT_HISTORY_LIMIT", 50),
    )
