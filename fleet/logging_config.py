"""
Logging setup for applications embedding the fleet client.

Modules log through logging.getLogger(__name__); this only attaches a root
handler and sets levels from settings.
"""

from __future__ import annotations

import logging

from fleet.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure the root logger. `level` overrides FLEETQL_LOG_LEVEL."""
    name = (level or settings.LOG_LEVEL).upper()
    numeric = logging.getLevelName(name)
    if not isinstance(numeric, int):
        raise RuntimeError(f"Unknown log level: {name}")

    logging.basicConfig(level=numeric, format=LOG_FORMAT)
    logging.getLogger().setLevel(numeric)

    # per-call query logs are DEBUG; surface them when asked for
    if settings.LOG_QUERIES:
        logging.getLogger("engine.query.client").setLevel(logging.DEBUG)
