"""
FleetQL Query Kernel — Record Store

In-memory tables keyed by model name. Rows are plain dicts.

The store owns integrity: defaults on insert, required columns, unique keys
(id, unique fields, compound uniques), foreign keys, and on-delete actions.
It knows nothing about where-inputs beyond unique lookups; the client composes
filters, ordering and projection on top of it.

Atomicity is copy-on-write: callers take a snapshot() before a write and
restore() it if the write raises.
"""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from engine.query.errors import ForeignKeyConstraintError, QueryValidationError, UniqueConstraintError
from engine.query.filters import matches
from engine.query.types import FieldDef, ModelDef, RelationDef, Schema, coerce_value, now

logger = logging.getLogger(__name__)


class MemoryStore:
    """Tables for every model in a schema."""

    def __init__(self, schema: Schema) -> None:
        self.schema = schema
        self.tables: dict[str, list[dict[str, Any]]] = {name: [] for name in schema.models}
        self.sequences: dict[str, int] = {name: 0 for name in schema.models}

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def rows(self, model_name: str) -> list[dict[str, Any]]:
        return self.tables[model_name]

    def related(self, model: ModelDef, rel: RelationDef, record: dict[str, Any]) -> list[dict[str, Any]]:
        """Rows of rel.target linked to `record` through `rel`."""
        key = tuple(record.get(col) for col in rel.fields)
        if any(v is None for v in key):
            return []
        return [
            row
            for row in self.tables[rel.target]
            if tuple(row.get(col) for col in rel.references) == key
        ]

    def find_unique(self, model: ModelDef, where: dict[str, Any]) -> dict[str, Any] | None:
        """First row matching a unique where-input, or None."""
        for row in self.tables[model.name]:
            if matches(self.schema, model, row, where, self):
                return row
        return None

    def find_all(self, model: ModelDef, where: dict[str, Any] | None) -> list[dict[str, Any]]:
        return [row for row in self.tables[model.name] if matches(self.schema, model, row, where, self)]

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def insert(self, model: ModelDef, values: dict[str, Any]) -> dict[str, Any]:
        """Insert a row. Applies defaults, then checks required, unique and foreign keys."""
        row: dict[str, Any] = {}
        missing: list[str] = []
        for fdef in model.fields.values():
            if fdef.name in values:
                row[fdef.name] = _coerce(model, fdef, values[fdef.name])
            elif fdef.has_default:
                row[fdef.name] = self._default(model, fdef)
            elif fdef.optional:
                row[fdef.name] = None
            else:
                missing.append(fdef.name)

        if missing:
            raise QueryValidationError(
                [f"Missing required field {model.name}.{name}" for name in missing],
                model.name,
                "create",
            )

        id_field = model.id_field
        if id_field.default == "autoincrement" and isinstance(row[id_field.name], int):
            self.sequences[model.name] = max(self.sequences[model.name], row[id_field.name])

        self._check_unique(model, row, exclude=None)
        self._check_foreign_keys(model, row, model.relations.keys())
        self.tables[model.name].append(row)
        return row

    def update_row(self, model: ModelDef, row: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
        """Apply column changes to an existing row, re-checking integrity for what changed."""
        updated = dict(row)
        for name, value in changes.items():
            fdef = model.fields[name]
            value = _coerce(model, fdef, value)
            if value is None and not fdef.optional:
                raise QueryValidationError(
                    [f"Field {model.name}.{name} cannot be null"], model.name, "update"
                )
            updated[name] = value
        for fdef in model.fields.values():
            if fdef.updated_at and fdef.name not in changes:
                updated[fdef.name] = now()

        changed = {name for name in changes if updated[name] != row.get(name)}
        if not changed:
            row.update(updated)
            return row

        self._check_unique(model, updated, exclude=row)
        touched = [name for name, rel in model.relations.items() if rel.owner and set(rel.fields) & changed]
        self._check_foreign_keys(model, updated, touched)
        self._cascade_key_change(model, row, updated, changed)
        row.update(updated)
        return row

    def delete_row(self, model: ModelDef, row: dict[str, Any]) -> None:
        """Remove a row, applying the on-delete action of every relation pointing at it."""
        for dep_model, rel in self.schema.back_relations(model.name):
            key = tuple(row.get(col) for col in rel.references)
            dependents = [
                d for d in self.tables[dep_model.name]
                if tuple(d.get(col) for col in rel.fields) == key
            ]
            if not dependents:
                continue
            action = rel.delete_action
            if action == "restrict":
                raise ForeignKeyConstraintError(
                    dep_model.name, rel.name, f"{len(dependents)} dependent row(s) restrict deleting {model.name}"
                )
            if action == "cascade":
                for dep in dependents:
                    if any(dep is r for r in self.tables[dep_model.name]):
                        self.delete_row(dep_model, dep)
            else:
                for dep in dependents:
                    for col in rel.fields:
                        dep[col] = None
        self.tables[model.name] = [r for r in self.tables[model.name] if r is not row]

    # -----------------------------------------------------------------------
    # Snapshots
    # -----------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        return {"tables": copy.deepcopy(self.tables), "sequences": dict(self.sequences)}

    def restore(self, snap: dict[str, Any]) -> None:
        self.tables = snap["tables"]
        self.sequences = snap["sequences"]

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe dump: datetimes as ISO 8601, decimals as strings."""
        return {
            "tables": {name: [_json_row(r) for r in rows] for name, rows in self.tables.items()},
            "sequences": dict(self.sequences),
        }

    @classmethod
    def from_dict(cls, schema: Schema, d: dict[str, Any]) -> MemoryStore:
        """Load a dump produced by to_dict(). Raises ValueError if integrity does not hold."""
        store = cls(schema)
        for name, rows in d.get("tables", {}).items():
            if name not in schema:
                raise ValueError(f"Unknown model in dataset: {name}")
            model = schema[name]
            for raw in rows:
                row = {}
                for fdef in model.fields.values():
                    row[fdef.name] = _coerce(model, fdef, raw.get(fdef.name))
                store.tables[name].append(row)
        for name, value in d.get("sequences", {}).items():
            if name in store.sequences:
                store.sequences[name] = int(value)

        errors = store.integrity_errors()
        if errors:
            raise ValueError("Dataset violates integrity: " + "; ".join(errors))
        logger.debug("Loaded dataset with %d rows", sum(len(r) for r in store.tables.values()))
        return store

    def integrity_errors(self) -> list[str]:
        """Return every unique or foreign-key violation in the current tables."""
        errors: list[str] = []
        for model in self.schema.models.values():
            for key in model.unique_keys():
                seen: set[tuple[Any, ...]] = set()
                for row in self.tables[model.name]:
                    values = tuple(row.get(col) for col in key)
                    if any(v is None for v in values):
                        continue
                    if values in seen:
                        errors.append(f"Duplicate {model.name}({', '.join(key)}) = {values}")
                    seen.add(values)
            for rel in model.relations.values():
                if not rel.owner:
                    continue
                for row in self.tables[model.name]:
                    if row.get(rel.fields[0]) is None:
                        continue
                    if not self.related(model, rel, row):
                        errors.append(f"{model.name}.{rel.name} points at a missing {rel.target}")
        return errors

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _default(self, model: ModelDef, fdef: FieldDef) -> Any:
        if fdef.updated_at or fdef.default == "now":
            return now()
        if fdef.default == "uuid":
            return str(uuid.uuid4())
        if fdef.default == "autoincrement":
            self.sequences[model.name] += 1
            return self.sequences[model.name]
        if callable(fdef.default):
            return _coerce(model, fdef, fdef.default())
        return _coerce(model, fdef, copy.deepcopy(fdef.default))

    def _check_unique(self, model: ModelDef, row: dict[str, Any], exclude: dict[str, Any] | None) -> None:
        for key in model.unique_keys():
            values = tuple(row.get(col) for col in key)
            if any(v is None for v in values):
                continue
            for other in self.tables[model.name]:
                if other is exclude:
                    continue
                if tuple(other.get(col) for col in key) == values:
                    raise UniqueConstraintError(model.name, key)

    def _check_foreign_keys(self, model: ModelDef, row: dict[str, Any], relation_names) -> None:
        for name in relation_names:
            rel = model.relations[name]
            if not rel.owner:
                continue
            if any(row.get(col) is None for col in rel.fields):
                continue
            if not self.related(model, rel, row):
                raise ForeignKeyConstraintError(
                    model.name, rel.name, f"no {rel.target} with {dict(zip(rel.references, (row[c] for c in rel.fields)))}"
                )

    def _cascade_key_change(
        self,
        model: ModelDef,
        old: dict[str, Any],
        new: dict[str, Any],
        changed: set[str],
    ) -> None:
        """Referenced columns changed: follow them in dependent foreign keys."""
        for dep_model, rel in self.schema.back_relations(model.name):
            if not set(rel.references) & changed:
                continue
            old_key = tuple(old.get(col) for col in rel.references)
            for dep in self.tables[dep_model.name]:
                if tuple(dep.get(col) for col in rel.fields) == old_key:
                    for fk_col, ref_col in zip(rel.fields, rel.references):
                        dep[fk_col] = new[ref_col]


def _coerce(model: ModelDef, fdef: FieldDef, value: Any) -> Any:
    try:
        return coerce_value(fdef, value)
    except ValueError as exc:
        raise QueryValidationError([f"Invalid value for {model.name}.{fdef.name}: {exc}"], model.name) from exc


def _json_row(row: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in row.items():
        if isinstance(value, datetime):
            out[key] = value.isoformat()
        elif isinstance(value, Decimal):
            out[key] = str(value)
        else:
            out[key] = copy.deepcopy(value)
    return out
