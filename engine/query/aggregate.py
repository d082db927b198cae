"""
FleetQL Query Kernel — Aggregation and Group-By

aggregate: _count / _sum / _avg / _min / _max over a record set.
group_by:  the same aggregates per distinct `by` tuple, then a having filter,
           ordering, and skip/take over the groups.

Nulls are ignored by every aggregate except `_count: True` / `_all`, which
count rows. Over an empty set, counts are 0 and the others are None.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from engine.query.filters import Truth, and3, not3, or3, scalar_condition
from engine.query.ordering import column_key, hashable, normalize_order_by, sort_by_value, sort_direction, window
from engine.query.types import AGGREGATES, FieldDef, ModelDef

_COUNT_FIELD = FieldDef(name="_count", type="Int")
_AVG_FIELD = FieldDef(name="_avg", type="Float")


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


def aggregate_records(model: ModelDef, records: list[dict[str, Any]], spec: dict[str, Any]) -> dict[str, Any]:
    """
    Compute the requested aggregates.

    spec maps an aggregate name to True (only `_count`) or to {field: True}.
    `_count: {"_all": True}` counts rows; `_count: {field: True}` counts non-null values.
    """
    result: dict[str, Any] = {}
    for agg, selection in spec.items():
        if agg not in AGGREGATES or not selection:
            continue
        if agg == "_count" and selection is True:
            result["_count"] = len(records)
            continue
        result[agg] = {
            name: compute(agg, model.fields.get(name), name, records)
            for name, wanted in selection.items()
            if wanted
        }
    return result


def compute(agg: str, fdef: FieldDef | None, name: str, records: list[dict[str, Any]]) -> Any:
    """One aggregate over one column."""
    if agg == "_count":
        if name == "_all":
            return len(records)
        return sum(1 for r in records if r.get(name) is not None)

    values = [r.get(name) for r in records if r.get(name) is not None]
    if not values:
        return None

    if agg == "_min":
        return min(values, key=column_key(fdef))
    if agg == "_max":
        return max(values, key=column_key(fdef))

    is_decimal = fdef is not None and fdef.type == "Decimal"
    total = sum(values, Decimal(0)) if is_decimal else sum(values)
    if agg == "_sum":
        return total
    if agg == "_avg":
        return total / Decimal(len(values)) if is_decimal else float(total) / len(values)

    raise ValueError(f"Unknown aggregate: {agg}")


# ---------------------------------------------------------------------------
# Group-by
# ---------------------------------------------------------------------------


class Group:
    """Records sharing one `by` tuple, with lazily computed aggregates."""

    __slots__ = ("key", "members", "model", "_cache")

    def __init__(self, model: ModelDef, key: dict[str, Any], members: list[dict[str, Any]]) -> None:
        self.model = model
        self.key = key
        self.members = members
        self._cache: dict[tuple[str, str], Any] = {}

    def aggregate(self, agg: str, name: str) -> Any:
        cache_key = (agg, name)
        if cache_key not in self._cache:
            self._cache[cache_key] = compute(agg, self.model.fields.get(name), name, self.members)
        return self._cache[cache_key]


def group_records(
    model: ModelDef,
    records: list[dict[str, Any]],
    by: list[str],
    aggregates: dict[str, Any],
    *,
    having: dict[str, Any] | None = None,
    order_by: dict[str, Any] | list[dict[str, Any]] | None = None,
    skip: int | None = None,
    take: int | None = None,
) -> list[dict[str, Any]]:
    """Group, filter groups with `having`, order, then page. Groups keep first-seen order by default."""
    buckets: dict[tuple[Any, ...], Group] = {}
    for record in records:
        key = tuple(hashable(record.get(f)) for f in by)
        group = buckets.get(key)
        if group is None:
            group = Group(model, {f: record.get(f) for f in by}, [])
            buckets[key] = group
        group.members.append(record)

    groups = list(buckets.values())
    if having:
        groups = [g for g in groups if evaluate_having(model, g, having) is True]

    groups = _order_groups(model, groups, order_by)
    groups = window(groups, None, skip, take)

    rows: list[dict[str, Any]] = []
    for g in groups:
        row = dict(g.key)
        row.update(aggregate_records(model, g.members, aggregates))
        rows.append(row)
    return rows


def evaluate_having(model: ModelDef, group: Group, having: dict[str, Any]) -> Truth:
    """
    Evaluate a having tree against one group.

    Field conditions take a scalar filter on the group's `by` value, plus any of
    {_count|_sum|_avg|_min|_max: filter} comparing that field's aggregate.
    """
    results: list[Truth] = []
    for key, condition in having.items():
        if key == "AND":
            subs = condition if isinstance(condition, list) else [condition]
            results.append(and3(evaluate_having(model, group, s) for s in subs))
        elif key == "OR":
            results.append(or3(evaluate_having(model, group, s) for s in condition))
        elif key == "NOT":
            subs = condition if isinstance(condition, list) else [condition]
            results.append(and3(not3(evaluate_having(model, group, s)) for s in subs))
        else:
            results.append(_field_having(model, group, key, condition))
    return and3(results)


def _field_having(model: ModelDef, group: Group, name: str, condition: Any) -> Truth:
    fdef = model.fields[name]
    if not isinstance(condition, dict):
        return scalar_condition(fdef, group.key.get(name), condition)

    scalar_part = {k: v for k, v in condition.items() if k not in AGGREGATES}
    results: list[Truth] = []
    if scalar_part:
        results.append(scalar_condition(fdef, group.key.get(name), scalar_part))
    for agg in AGGREGATES:
        if agg in condition:
            value = group.aggregate(agg, name)
            results.append(scalar_condition(_aggregate_field(agg, fdef), value, condition[agg]))
    return and3(results)


def _aggregate_field(agg: str, fdef: FieldDef) -> FieldDef:
    """Column type an aggregate value compares as."""
    if agg == "_count":
        return _COUNT_FIELD
    if agg == "_avg" and fdef.type != "Decimal":
        return _AVG_FIELD
    return fdef


def _order_groups(
    model: ModelDef,
    groups: list[Group],
    order_by: dict[str, Any] | list[dict[str, Any]] | None,
) -> list[Group]:
    ordered = list(groups)
    for spec in reversed(normalize_order_by(order_by)):
        (name, value), = spec.items()
        if name in AGGREGATES:
            (field_name, direction_spec), = value.items()
            direction, nulls = sort_direction(direction_spec)
            # only _min/_max keep the column's own values
            key = column_key(model.fields.get(field_name) if name in ("_min", "_max") else None)
            ordered = sort_by_value(
                ordered,
                lambda g, a=name, f=field_name, k=key: k(g.aggregate(a, f)),
                direction,
                nulls,
            )
        else:
            direction, nulls = sort_direction(value)
            key = column_key(model.fields.get(name))
            ordered = sort_by_value(ordered, lambda g, f=name, k=key: k(g.key.get(f)), direction, nulls)
    return ordered

