"""
FleetQL fleet package — the fleet-management schema on top of the query kernel.

  schema   : build_schema(): users, profiles, vehicles, trips, shipments, ...
  client   : make_client(): a client over an empty or seeded store
  listing  : page_args, search_where, status_counts
"""

from fleet.client import make_client
from fleet.schema import build_schema

__all__ = ["build_schema", "make_client"]
