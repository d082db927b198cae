"""
FleetQL configuration — all environment variables in one place.

Read from environment at import time.
"""

from __future__ import annotations

import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None


def _bool_env(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application settings from environment variables."""

    # Logging
    LOG_LEVEL: str = os.environ.get("FLEETQL_LOG_LEVEL", "INFO").upper()
    LOG_QUERIES: bool = _bool_env("FLEETQL_LOG_QUERIES")

    # Listing
    PAGE_SIZE: int = _int_env("FLEETQL_PAGE_SIZE", 5)

    # Dataset
    SEED_PATH: str = os.environ.get("FLEETQL_SEED_PATH", "")


# Singleton instance
settings = Settings()

if settings.PAGE_SIZE < 1:
    raise RuntimeError("FLEETQL_PAGE_SIZE must be at least 1")
