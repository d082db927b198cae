"""
FleetQL Query Kernel — Result Shaping

Turns stored rows into returned records according to select / include.
Returned records are copies: callers may mutate them freely.
"""

from __future__ import annotations

import copy
from typing import Any

from engine.query.filters import filter_records
from engine.query.ordering import apply_distinct, order_records, paginate
from engine.query.store import MemoryStore
from engine.query.types import ModelDef, RelationDef, Schema


def project(
    schema: Schema,
    model: ModelDef,
    row: dict[str, Any],
    store: MemoryStore,
    select: dict[str, Any] | None = None,
    include: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Shape one row. Without select or include, every scalar field is returned."""
    if select is not None:
        out: dict[str, Any] = {}
        for key, wanted in select.items():
            if not wanted:
                continue
            if key == "_count":
                out["_count"] = count_relations(schema, model, row, store, wanted)
            elif key in model.fields:
                out[key] = copy.deepcopy(row.get(key))
            else:
                out[key] = _related(schema, model, model.relations[key], row, store, wanted)
        return out

    out = {name: copy.deepcopy(row.get(name)) for name in model.fields}
    for key, wanted in (include or {}).items():
        if not wanted:
            continue
        if key == "_count":
            out["_count"] = count_relations(schema, model, row, store, wanted)
        else:
            out[key] = _related(schema, model, model.relations[key], row, store, wanted)
    return out


def project_many(
    schema: Schema,
    model: ModelDef,
    rows: list[dict[str, Any]],
    store: MemoryStore,
    select: dict[str, Any] | None = None,
    include: dict[str, Any] | None = None,
) -> list[dict[str, Any]]:
    return [project(schema, model, r, store, select, include) for r in rows]


def count_relations(
    schema: Schema,
    model: ModelDef,
    row: dict[str, Any],
    store: MemoryStore,
    spec: Any,
) -> dict[str, int]:
    """
    Related-row counts for `_count`.

    True counts every to-many relation. {"select": {rel: True | {"where": ...}}}
    counts the named ones, optionally filtered.
    """
    if spec is True:
        wanted = {name: True for name, rel in model.relations.items() if rel.to_many}
    else:
        wanted = {name: v for name, v in spec["select"].items() if v}

    counts: dict[str, int] = {}
    for name, arg in wanted.items():
        rel = model.relations[name]
        related = store.related(model, rel, row)
        if isinstance(arg, dict):
            related = filter_records(schema, schema[rel.target], related, arg.get("where"), store)
        counts[name] = len(related)
    return counts


def _related(
    schema: Schema,
    model: ModelDef,
    rel: RelationDef,
    row: dict[str, Any],
    store: MemoryStore,
    arg: Any,
) -> Any:
    target = schema[rel.target]
    args = arg if isinstance(arg, dict) else {}
    related = store.related(model, rel, row)

    if not rel.to_many:
        if not related:
            return None
        return project(schema, target, related[0], store, args.get("select"), args.get("include"))

    rows = filter_records(schema, target, related, args.get("where"), store)
    rows = order_records(schema, target, rows, args.get("order_by"), store)
    rows = apply_distinct(rows, args.get("distinct"))
    rows = paginate(
        schema,
        target,
        rows,
        store,
        cursor=args.get("cursor"),
        skip=args.get("skip"),
        take=args.get("take"),
    )
    return project_many(schema, target, rows, store, args.get("select"), args.get("include"))
