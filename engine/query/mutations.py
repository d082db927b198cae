"""
FleetQL Query Kernel — Mutations

Applies validated create/update data to the store, including nested relation
writes and atomic number operations.

Owner-side relations (this row holds the foreign key) are resolved before the
row is written, so the foreign key is known. Back-side relations (the related
rows hold the foreign key) are written after, once this row exists.

The writer does not take snapshots. The client wraps each top-level operation
so that any exception leaves the store as it was.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from engine.query.errors import QueryValidationError, RecordNotFoundError, RelationViolationError, UniqueConstraintError
from engine.query.filters import matches
from engine.query.store import MemoryStore
from engine.query.types import FieldDef, ModelDef, RelationDef, Schema, coerce_value
from engine.query.validation import is_atomic_update

logger = logging.getLogger(__name__)


class Writer:
    """Executes write data against a store."""

    def __init__(self, schema: Schema, store: MemoryStore) -> None:
        self.schema = schema
        self.store = store

    # -----------------------------------------------------------------------
    # Create
    # -----------------------------------------------------------------------

    def create(
        self,
        model: ModelDef,
        data: dict[str, Any],
        parent: tuple[RelationDef, dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """
        Insert one row and its nested writes.

        parent is (owner relation on `model`, parent row) when this create is
        nested under a back-side relation of the parent.
        """
        values = {k: v for k, v in data.items() if k in model.fields}

        for name, arg in data.items():
            rel = model.relations.get(name)
            if rel is None or not rel.owner:
                continue
            target_row = self._resolve_owned(model, rel, arg)
            values.update(_foreign_key(rel, target_row))

        if parent is not None:
            link, parent_row = parent
            values.update(_foreign_key(link, parent_row))

        row = self.store.insert(model, values)

        for name, arg in data.items():
            rel = model.relations.get(name)
            if rel is not None and not rel.owner:
                self._write_back_side(model, rel, row, arg)
        return row

    def create_many(
        self,
        model: ModelDef,
        items: list[dict[str, Any]],
        skip_duplicates: bool = False,
        parent: tuple[RelationDef, dict[str, Any]] | None = None,
    ) -> list[dict[str, Any]]:
        created: list[dict[str, Any]] = []
        for item in items:
            try:
                created.append(self.create(model, item, parent))
            except UniqueConstraintError:
                if not skip_duplicates:
                    raise
                logger.debug("create_many: skipped duplicate %s row", model.name)
        return created

    def _resolve_owned(self, model: ModelDef, rel: RelationDef, arg: dict[str, Any]) -> dict[str, Any]:
        """The target row an owner-side create write points at."""
        target = self.schema[rel.target]
        if "create" in arg:
            return self.create(target, arg["create"])
        if "connect" in arg:
            return self._require(target, arg["connect"], "connect")
        spec = arg["connect_or_create"]
        found = self.store.find_unique(target, spec["where"])
        return found if found is not None else self.create(target, spec["create"])

    # -----------------------------------------------------------------------
    # Update
    # -----------------------------------------------------------------------

    def update(self, model: ModelDef, row: dict[str, Any], data: dict[str, Any]) -> dict[str, Any]:
        """Apply update data to an existing row."""
        changes: dict[str, Any] = {}
        for key, value in data.items():
            fdef = model.fields.get(key)
            if fdef is not None:
                changes[key] = _field_update(model, fdef, row.get(key), value)

        for name, arg in data.items():
            rel = model.relations.get(name)
            if rel is not None and rel.owner:
                changes.update(self._update_owned(model, rel, row, arg))

        self.store.update_row(model, row, changes)

        for name, arg in data.items():
            rel = model.relations.get(name)
            if rel is not None and not rel.owner:
                self._write_back_side(model, rel, row, arg)
        return row

    def update_many(self, model: ModelDef, where: dict[str, Any] | None, data: dict[str, Any]) -> int:
        rows = self.store.find_all(model, where)
        for row in rows:
            self.update(model, row, data)
        return len(rows)

    def delete_many(self, model: ModelDef, where: dict[str, Any] | None) -> int:
        rows = self.store.find_all(model, where)
        deleted = 0
        for row in rows:
            # an earlier cascade may already have removed it
            if any(row is r for r in self.store.rows(model.name)):
                self.store.delete_row(model, row)
                deleted += 1
        return deleted

    def _update_owned(
        self,
        model: ModelDef,
        rel: RelationDef,
        row: dict[str, Any],
        arg: dict[str, Any],
    ) -> dict[str, Any]:
        """Writes through a relation whose foreign key lives on `row`. Returns column changes."""
        target = self.schema[rel.target]
        changes: dict[str, Any] = {}
        for op, spec in arg.items():
            current = self._one(model, rel, row)
            if op == "create":
                changes.update(_foreign_key(rel, self.create(target, spec)))
            elif op == "connect":
                changes.update(_foreign_key(rel, self._require(target, spec, "connect")))
            elif op == "connect_or_create":
                found = self.store.find_unique(target, spec["where"])
                changes.update(_foreign_key(rel, found if found is not None else self.create(target, spec["create"])))
            elif op == "disconnect":
                changes.update({col: None for col in rel.fields})
            elif op == "update":
                if current is None:
                    raise RecordNotFoundError(target.name, "update", f"no {rel.name} connected")
                self.update(target, current, spec)
            elif op == "upsert":
                if current is not None:
                    self.update(target, current, spec["update"])
                else:
                    changes.update(_foreign_key(rel, self.create(target, spec["create"])))
            elif op == "delete":
                if current is None:
                    raise RecordNotFoundError(target.name, "delete", f"no {rel.name} connected")
                self.store.delete_row(target, current)
                changes.update({col: None for col in rel.fields if col in model.fields})
        return changes

    # -----------------------------------------------------------------------
    # Back-side relations
    # -----------------------------------------------------------------------

    def _write_back_side(self, model: ModelDef, rel: RelationDef, row: dict[str, Any], arg: dict[str, Any]) -> None:
        """Writes through a relation whose foreign key lives on the related rows."""
        target = self.schema[rel.target]
        link = self.schema.opposite(model.name, rel)
        parent = (link, row)

        def items(v: Any) -> list[Any]:
            return v if isinstance(v, list) else [v]

        def connected(where: dict[str, Any] | None) -> list[dict[str, Any]]:
            return [
                r for r in self.store.related(model, rel, row)
                if matches(self.schema, target, r, where, self.store)
            ]

        def one_connected(where: dict[str, Any] | None, op: str) -> dict[str, Any]:
            found = connected(where)
            if not found:
                raise RecordNotFoundError(target.name, op, f"no connected {rel.name} matches")
            return found[0]

        for op, spec in arg.items():
            if op == "create":
                for data in items(spec):
                    if not rel.to_many:
                        self._release_current(model, rel, row)
                    self.create(target, data, parent)
            elif op == "create_many":
                self.create_many(target, spec["data"], spec.get("skip_duplicates", False), parent)
            elif op == "connect":
                for where in items(spec):
                    child = self._require(target, where, "connect")
                    self._attach(model, rel, link, row, child)
            elif op == "connect_or_create":
                for s in items(spec):
                    child = self.store.find_unique(target, s["where"])
                    if child is None:
                        if not rel.to_many:
                            self._release_current(model, rel, row)
                        self.create(target, s["create"], parent)
                    else:
                        self._attach(model, rel, link, row, child)
            elif op == "set":
                keep = [self._require(target, where, "set") for where in spec]
                for child in self.store.related(model, rel, row):
                    if not any(child is k for k in keep):
                        self._detach(target, link, child)
                for child in keep:
                    self.store.update_row(target, child, _foreign_key(link, row))
            elif op == "disconnect":
                if rel.to_many:
                    for where in items(spec):
                        for child in connected(where):
                            self._detach(target, link, child)
                else:
                    for child in connected(None):
                        self._detach(target, link, child)
            elif op == "delete":
                if rel.to_many:
                    for where in items(spec):
                        self.store.delete_row(target, one_connected(where, "delete"))
                else:
                    self.store.delete_row(target, one_connected(None, "delete"))
            elif op == "update":
                if rel.to_many:
                    for s in items(spec):
                        self.update(target, one_connected(s["where"], "update"), s["data"])
                else:
                    self.update(target, one_connected(None, "update"), spec)
            elif op == "update_many":
                for s in items(spec):
                    for child in connected(s["where"]):
                        self.update(target, child, s["data"])
            elif op == "delete_many":
                for where in items(spec):
                    for child in connected(where):
                        self.store.delete_row(target, child)
            elif op == "upsert":
                for s in items(spec):
                    found = connected(s.get("where"))
                    if found:
                        self.update(target, found[0], s["update"])
                    else:
                        self.create(target, s["create"], parent)

    def _attach(
        self,
        model: ModelDef,
        rel: RelationDef,
        link: RelationDef,
        row: dict[str, Any],
        child: dict[str, Any],
    ) -> None:
        if not rel.to_many:
            current = self._one(model, rel, row)
            if current is child:
                return
            self._release_current(model, rel, row)
        self.store.update_row(self.schema[rel.target], child, _foreign_key(link, row))

    def _release_current(self, model: ModelDef, rel: RelationDef, row: dict[str, Any]) -> None:
        """A to-one back side is about to get a new partner: detach the old one."""
        current = self._one(model, rel, row)
        if current is not None:
            self._detach(self.schema[rel.target], self.schema.opposite(model.name, rel), current)

    def _detach(self, target: ModelDef, link: RelationDef, child: dict[str, Any]) -> None:
        if not link.optional:
            raise RelationViolationError(target.name, link.name)
        self.store.update_row(target, child, {col: None for col in link.fields})

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _one(self, model: ModelDef, rel: RelationDef, row: dict[str, Any]) -> dict[str, Any] | None:
        related = self.store.related(model, rel, row)
        return related[0] if related else None

    def _require(self, model: ModelDef, where: dict[str, Any], operation: str) -> dict[str, Any]:
        found = self.store.find_unique(model, where)
        if found is None:
            raise RecordNotFoundError(model.name, operation, f"where {where}")
        return found


def _foreign_key(rel: RelationDef, target_row: dict[str, Any]) -> dict[str, Any]:
    """Column values that make `rel` point at `target_row`."""
    return {col: target_row[ref] for col, ref in zip(rel.fields, rel.references)}


def _field_update(model: ModelDef, fdef: FieldDef, current: Any, value: Any) -> Any:
    """New column value for a plain value or an atomic number operation."""
    if not is_atomic_update(fdef, value):
        return value

    (op, operand), = value.items()
    if op == "set":
        return operand
    if current is None:
        return None

    try:
        operand = coerce_value(fdef, operand)
    except ValueError as exc:
        raise QueryValidationError([f"Invalid {op} operand for {model.name}.{fdef.name}: {exc}"], model.name) from exc

    if op == "increment":
        return current + operand
    if op == "decrement":
        return current - operand
    if op == "multiply":
        return current * operand
    if op == "divide":
        if fdef.type == "Int":
            # truncates toward zero without going through float
            quotient = abs(current) // abs(operand)
            return -quotient if (current < 0) != (operand < 0) else quotient
        if fdef.type == "Decimal":
            return Decimal(current) / operand
        return current / operand
    raise ValueError(f"Unknown update operation: {op}")
