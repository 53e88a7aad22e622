"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


_ENV_PREFIX = "SHOPFLOOR_"


def _env(name: str, default: str) -> str:
    return os.getenv(f"{_ENV_PREFIX}{name}", default)


def _env_int(name: str, default: int) -> int:
    raw = _env(name, str(default))
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{_ENV_PREFIX}{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = _env(name, str(default))
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{_ENV_PREFIX}{name} must be a number, got {raw!r}") from exc


def _env_path(name: str) -> Optional[Path]:
    raw = _env(name, "").strip()
    return Path(raw) if raw else None


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str

    # Validator thresholds
    efficiency_warning_threshold: float
    maintenance_warning_days: int
    low_utilization_threshold: float

    # Scorer maintenance horizon (days)
    maintenance_horizon_full_days: int
    maintenance_horizon_partial_days: int

    # Commit protocol
    commit_lock_timeout_seconds: float
    default_allocation_status: str
    allocation_id_prefix: str

    snapshot_path: Optional[Path]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process from ``SHOPFLOOR_*`` variables."""
    return Settings(
        app_name=_env("APP_NAME", "Shop-Floor Resource Allocation"),
        app_version=_env("APP_VERSION", "0.1.0"),
        log_level=_env("LOG_LEVEL", "INFO"),
        efficiency_warning_threshold=_env_float("EFFICIENCY_WARNING_THRESHOLD", 75.0),
        maintenance_warning_days=_env_int("MAINTENANCE_WARNING_DAYS", 7),
        low_utilization_threshold=_env_float("LOW_UTILIZATION_THRESHOLD", 50.0),
        maintenance_horizon_full_days=_env_int("MAINTENANCE_HORIZON_FULL_DAYS", 30),
        maintenance_horizon_partial_days=_env_int("MAINTENANCE_HORIZON_PARTIAL_DAYS", 7),
        commit_lock_timeout_seconds=_env_float("COMMIT_LOCK_TIMEOUT_SECONDS", 5.0),
        default_allocation_status=_env("DEFAULT_ALLOCATION_STATUS", "active"),
        allocation_id_prefix=_env("ALLOCATION_ID_PREFIX", "alloc-"),
        snapshot_path=_env_path("SNAPSHOT_PATH"),
    )
