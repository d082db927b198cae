"""
FleetQL Query Kernel — Filter Evaluator

Decides whether a record matches a where-input tree.

Evaluation uses SQL three-valued logic: every node returns True, False or
None (unknown). A scalar comparison against a null column is unknown, AND/OR/NOT
follow the SQL truth tables, and a record matches only when the whole tree is
True. Null checks (`{field: None}`, `{"not": None}`) and relation filters always
produce a definite answer.

The evaluator assumes the where-input already passed validation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable

from engine.query.types import (
    SCALAR_OPERATORS,
    FieldDef,
    ModelDef,
    RelationDef,
    Schema,
    coerce_value,
    compound_key_name,
)

if TYPE_CHECKING:
    from engine.query.store import MemoryStore

Truth = bool | None


# ---------------------------------------------------------------------------
# Three-valued logic
# ---------------------------------------------------------------------------


def and3(values: Iterable[Truth]) -> Truth:
    """SQL AND: False dominates, then unknown."""
    result: Truth = True
    for v in values:
        if v is False:
            return False
        if v is None:
            result = None
    return result


def or3(values: Iterable[Truth]) -> Truth:
    """SQL OR: True dominates, then unknown."""
    result: Truth = False
    for v in values:
        if v is True:
            return True
        if v is None:
            result = None
    return result


def not3(value: Truth) -> Truth:
    return None if value is None else not value


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def matches(
    schema: Schema,
    model: ModelDef,
    record: dict[str, Any],
    where: dict[str, Any] | None,
    store: MemoryStore,
) -> bool:
    """True when `record` satisfies `where`. Empty or missing where matches everything."""
    return evaluate(schema, model, record, where, store) is True


def evaluate(
    schema: Schema,
    model: ModelDef,
    record: dict[str, Any],
    where: dict[str, Any] | None,
    store: MemoryStore,
) -> Truth:
    """Evaluate a where-input to True, False or None (unknown)."""
    if not where:
        return True

    results: list[Truth] = []
    for key, condition in where.items():
        if key == "AND":
            subs = condition if isinstance(condition, list) else [condition]
            results.append(and3(evaluate(schema, model, record, s, store) for s in subs))
        elif key == "OR":
            results.append(or3(evaluate(schema, model, record, s, store) for s in condition))
        elif key == "NOT":
            subs = condition if isinstance(condition, list) else [condition]
            results.append(and3(not3(evaluate(schema, model, record, s, store)) for s in subs))
        elif key in model.fields:
            results.append(scalar_condition(model.fields[key], record.get(key), condition))
        elif key in model.relations:
            results.append(relation_condition(schema, model, model.relations[key], record, condition, store))
        else:
            columns = _compound_columns(model, key)
            results.append(
                and3(
                    scalar_condition(model.fields[col], record.get(col), condition[col])
                    for col in columns
                )
            )
    return and3(results)


def filter_records(
    schema: Schema,
    model: ModelDef,
    records: Iterable[dict[str, Any]],
    where: dict[str, Any] | None,
    store: MemoryStore,
) -> list[dict[str, Any]]:
    """Keep records matching `where`, preserving order."""
    if not where:
        return list(records)
    return [r for r in records if matches(schema, model, r, where, store)]


# ---------------------------------------------------------------------------
# Scalar filters
# ---------------------------------------------------------------------------


def is_filter_object(fdef: FieldDef, condition: Any) -> bool:
    """
    True when `condition` is an operator dict rather than a bare value.
    For Json columns a dict is a filter only when every key is an operator.
    """
    if not isinstance(condition, dict):
        return False
    if fdef.type != "Json":
        return True
    allowed = SCALAR_OPERATORS["Json"]
    return bool(condition) and all(k in allowed for k in condition)


def scalar_condition(fdef: FieldDef, actual: Any, condition: Any, mode: str = "default") -> Truth:
    """Evaluate one column against a bare value, None, or an operator dict."""
    if not is_filter_object(fdef, condition):
        return _equals(fdef, actual, condition, mode)

    mode = condition.get("mode", mode)
    results: list[Truth] = []
    for op, expected in condition.items():
        if op == "mode":
            continue
        results.append(_apply_operator(fdef, op, actual, expected, mode))
    return and3(results)


def _apply_operator(fdef: FieldDef, op: str, actual: Any, expected: Any, mode: str) -> Truth:
    if op == "equals":
        return _equals(fdef, actual, expected, mode)

    if op == "not":
        if expected is None:
            return actual is not None
        if is_filter_object(fdef, expected):
            # nested filters inherit the enclosing mode unless they set their own
            return not3(scalar_condition(fdef, actual, expected, mode))
        return not3(_equals(fdef, actual, expected, mode))

    if op == "in":
        if not expected:
            return False
        return or3(_equals(fdef, actual, e, mode) for e in expected)

    if op == "not_in":
        if not expected:
            return True
        return and3(not3(_equals(fdef, actual, e, mode)) for e in expected)

    if actual is None:
        return None

    left = _normalize(fdef, actual, mode)
    right = _normalize(fdef, _operand(fdef, expected), mode)

    if op == "lt":
        return left < right
    if op == "lte":
        return left <= right
    if op == "gt":
        return left > right
    if op == "gte":
        return left >= right
    if op == "contains":
        return right in left
    if op == "starts_with":
        return left.startswith(right)
    if op == "ends_with":
        return left.endswith(right)

    raise ValueError(f"Unknown filter operator: {op}")


def _equals(fdef: FieldDef, actual: Any, expected: Any, mode: str) -> Truth:
    if expected is None:
        return actual is None
    if actual is None:
        return None
    return _normalize(fdef, actual, mode) == _normalize(fdef, _operand(fdef, expected), mode)


def _operand(fdef: FieldDef, value: Any) -> Any:
    """Coerce a filter operand to the column type where the types differ in Python."""
    if fdef.type in ("DateTime", "Decimal"):
        return coerce_value(fdef, value)
    return value


def _normalize(fdef: FieldDef, value: Any, mode: str) -> Any:
    if mode == "insensitive" and isinstance(value, str):
        return value.lower()
    return value


def _compound_columns(model: ModelDef, key: str) -> tuple[str, ...]:
    for columns in model.unique_together:
        if compound_key_name(columns) == key:
            return tuple(columns)
    raise KeyError(f"Unknown field {model.name}.{key}")


# ---------------------------------------------------------------------------
# Relation filters
# ---------------------------------------------------------------------------


def relation_condition(
    schema: Schema,
    model: ModelDef,
    rel: RelationDef,
    record: dict[str, Any],
    condition: Any,
    store: MemoryStore,
) -> Truth:
    """
    Existence tests over related rows. Always definite (True/False).

    to-many: some / every / none
    to-one:  is / is_not, a bare where (shorthand for is), or None (no related row)
    """
    target = schema[rel.target]
    related = store.related(model, rel, record)

    def hit(row: dict[str, Any], sub: dict[str, Any] | None) -> bool:
        return matches(schema, target, row, sub, store)

    if rel.to_many:
        results: list[Truth] = []
        for op, sub in condition.items():
            if op == "some":
                results.append(any(hit(r, sub) for r in related))
            elif op == "every":
                results.append(all(hit(r, sub) for r in related))
            elif op == "none":
                results.append(not any(hit(r, sub) for r in related))
            else:
                raise ValueError(f"Unknown relation filter: {op}")
        return and3(results)

    if condition is None:
        return not related

    if condition and set(condition) <= {"is", "is_not"}:
        results = []
        for op, sub in condition.items():
            if op == "is":
                results.append(not related if sub is None else bool(related) and hit(related[0], sub))
            else:
                results.append(bool(related) if sub is None else not (related and hit(related[0], sub)))
        return and3(results)

    return bool(related) and hit(related[0], condition)
