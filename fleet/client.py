"""
Fleet client factory.

make_client() builds the fleet schema and a client over a fresh store, or over
a dataset produced by MemoryStore.to_dict().
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from engine.query.client import Client
from engine.query.store import MemoryStore
from fleet.config import settings
from fleet.schema import build_schema

logger = logging.getLogger(__name__)


def make_client(seed: dict[str, Any] | str | Path | None = None) -> Client:
    """
    Create a fleet client.

    seed may be a dataset dict, or a path to a JSON dataset file. Without a
    seed, FLEETQL_SEED_PATH is loaded when set; otherwise the store is empty.
    """
    schema = build_schema()

    if seed is None and settings.SEED_PATH:
        seed = settings.SEED_PATH

    if seed is None:
        store = MemoryStore(schema)
    else:
        if isinstance(seed, (str, Path)):
            path = Path(seed)
            seed = json.loads(path.read_text())
            logger.info("Loaded fleet dataset from %s", path)
        store = MemoryStore.from_dict(schema, seed)

    return Client(schema, store, log_queries=settings.LOG_QUERIES)


def dump_dataset(client: Client, path: str | Path) -> None:
    """Write the client's store to a JSON file readable by make_client()."""
    Path(path).write_text(json.dumps(client.store.to_dict(), indent=2))
    logger.info("Saved fleet dataset to %s", path)
