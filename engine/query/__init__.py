"""
FleetQL Query Kernel — the generic query engine.

Components:
  types       : schema declarations (models, fields, relations)
  args        : pydantic models for operation arguments
  validation  : schema-aware checks run before anything is read
  filters     : where-input evaluation with three-valued null logic
  ordering    : order_by, distinct, cursor and take/skip
  aggregate   : aggregate and group_by with having
  mutations   : create/update data with nested relation writes
  projection  : select / include / _count
  store       : in-memory tables with unique and foreign-key integrity
  client      : Client and per-model delegates
"""

from engine.query.client import Client, ModelDelegate
from engine.query.errors import (
    ForeignKeyConstraintError,
    QueryError,
    QueryValidationError,
    RecordNotFoundError,
    RelationViolationError,
    UniqueConstraintError,
)
from engine.query.filters import matches
from engine.query.store import MemoryStore
from engine.query.types import FieldDef, ModelDef, RelationDef, Schema, model, scalar

__all__ = [
    "Client",
    "ModelDelegate",
    "MemoryStore",
    "Schema",
    "ModelDef",
    "FieldDef",
    "RelationDef",
    "model",
    "scalar",
    "matches",
    "QueryError",
    "QueryValidationError",
    "RecordNotFoundError",
    "UniqueConstraintError",
    "ForeignKeyConstraintError",
    "RelationViolationError",
]
