"""
FleetQL Query Kernel — Ordering and Pagination

Read pipeline after filtering: order → distinct → cursor → skip → take.

Ordering is multi-key and stable. Each key is one of:
  {"field": "asc" | "desc"}
  {"field": {"sort": "asc" | "desc", "nulls": "first" | "last"}}
  {"to_one_relation": {<key>}}            (orders by the related row's column)
  {"to_many_relation": {"_count": "asc" | "desc"}}

Nulls sort as the largest value unless `nulls` says otherwise:
last when ascending, first when descending. Enum columns sort by declaration
order, not alphabetically.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

from engine.query.filters import matches
from engine.query.types import FieldDef, ModelDef, Schema

if TYPE_CHECKING:
    from engine.query.store import MemoryStore

ValueFn = Callable[[dict[str, Any]], Any]


def normalize_order_by(order_by: dict[str, Any] | list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    """Flatten an order_by input into a list of single-key dicts, most significant first."""
    if not order_by:
        return []
    items = order_by if isinstance(order_by, list) else [order_by]
    flat: list[dict[str, Any]] = []
    for item in items:
        for key, value in item.items():
            flat.append({key: value})
    return flat


def column_key(fdef: FieldDef | None) -> Callable[[Any], Any]:
    """Sort key for values of one column. Enum values rank by their position in the declaration."""
    if fdef is None or fdef.type != "Enum":
        return lambda v: v
    rank = {value: i for i, value in enumerate(fdef.enum_values or ())}
    return rank.get


def sort_direction(value: Any) -> tuple[str, str | None]:
    """("asc"|"desc", nulls or None) from "asc" or {"sort": ..., "nulls": ...}."""
    if isinstance(value, dict):
        return value.get("sort", "asc"), value.get("nulls")
    return value, None


def order_records(
    schema: Schema,
    model: ModelDef,
    records: list[dict[str, Any]],
    order_by: dict[str, Any] | list[dict[str, Any]] | None,
    store: MemoryStore,
) -> list[dict[str, Any]]:
    """Sort records by every key in order_by. Without order_by, keep insertion order."""
    ordered = list(records)
    for spec in reversed(normalize_order_by(order_by)):
        value_fn, direction, nulls = _resolve_key(schema, model, spec, store)
        ordered = sort_by_value(ordered, value_fn, direction, nulls)
    return ordered


def sort_by_value(
    records: list[dict[str, Any]],
    value_fn: ValueFn,
    direction: str,
    nulls: str | None,
) -> list[dict[str, Any]]:
    """Stable sort on one key, placing nulls explicitly."""
    descending = direction == "desc"
    if nulls is None:
        nulls = "first" if descending else "last"
    present = [r for r in records if value_fn(r) is not None]
    missing = [r for r in records if value_fn(r) is None]
    present.sort(key=value_fn, reverse=descending)
    return missing + present if nulls == "first" else present + missing


def _resolve_key(
    schema: Schema,
    model: ModelDef,
    spec: dict[str, Any],
    store: MemoryStore,
) -> tuple[ValueFn, str, str | None]:
    (name, value), = spec.items()

    if name in model.fields:
        direction, nulls = sort_direction(value)
        key = column_key(model.fields[name])
        return (lambda r: key(r.get(name))), direction, nulls

    rel = model.relations[name]
    if rel.to_many:
        direction = value["_count"]
        return (lambda r: len(store.related(model, rel, r))), direction, None

    target = schema[rel.target]
    inner_fn, direction, nulls = _resolve_key(schema, target, value, store)

    def through_relation(record: dict[str, Any]) -> Any:
        related = store.related(model, rel, record)
        return inner_fn(related[0]) if related else None

    return through_relation, direction, nulls


def apply_distinct(records: list[dict[str, Any]], distinct: list[str] | None) -> list[dict[str, Any]]:
    """Keep the first record of every distinct value tuple."""
    if not distinct:
        return records
    seen: set[Any] = set()
    kept: list[dict[str, Any]] = []
    for r in records:
        key = tuple(hashable(r.get(f)) for f in distinct)
        if key in seen:
            continue
        seen.add(key)
        kept.append(r)
    return kept


def paginate(
    schema: Schema,
    model: ModelDef,
    ordered: list[dict[str, Any]],
    store: MemoryStore,
    *,
    cursor: dict[str, Any] | None = None,
    skip: int | None = None,
    take: int | None = None,
) -> list[dict[str, Any]]:
    """
    Slice an ordered list.

    The cursor row is included. An unknown cursor yields an empty page.
    A negative take walks backwards from the cursor (or from the end),
    returning rows in their original order.
    """
    position: int | None = None
    if cursor is not None:
        position = next(
            (i for i, r in enumerate(ordered) if matches(schema, model, r, cursor, store)),
            None,
        )
        if position is None:
            return []
    return window(ordered, position, skip, take)


def window(ordered: list[Any], position: int | None, skip: int | None, take: int | None) -> list[Any]:
    """
    skip/take from `position` (or from the start). A negative take walks
    backwards from `position` (or from the end), skipping `skip` items first.
    """
    skip = skip or 0

    if take is not None and take < 0:
        end = (position + 1 if position is not None else len(ordered)) - skip
        if end <= 0:
            return []
        start = max(0, end + take)
        return ordered[start:end]

    start = (position or 0) + skip
    end = None if take is None else start + take
    return ordered[start:end]


def hashable(value: Any) -> Any:
    if isinstance(value, dict):
        return tuple(sorted((k, hashable(v)) for k, v in value.items()))
    if isinstance(value, list):
        return tuple(hashable(v) for v in value)
    return value
