"""
FleetQL Query Kernel — Argument Validation

Validates where-inputs, orderings, selections, write data and aggregate specs
against a model before anything is executed. Returns a list of error strings.
Empty list = valid.

This checks structural validity only:
- Are fields, relations and operators known?
- Does each operator apply to the column type?
- Are operand values representable in the column type?
- Are nested writes allowed where they appear?

It does NOT check whether referenced rows exist or unique keys collide.
That's the store's job.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from engine.query.filters import is_filter_object
from engine.query.ordering import normalize_order_by, sort_direction
from engine.query.types import (
    AGGREGATES,
    ATOMIC_OPERATIONS,
    CREATE_WRITES,
    NULLS_ORDERS,
    NUMERIC_TYPES,
    ORDERED_TYPES,
    QUERY_MODES,
    SCALAR_OPERATORS,
    SORT_ORDERS,
    TO_MANY_FILTERS,
    TO_MANY_WRITES,
    TO_ONE_FILTERS,
    TO_ONE_WRITES,
    FieldDef,
    ModelDef,
    Schema,
    coerce_value,
    compound_key_name,
)

_COUNT_FIELD = FieldDef(name="_count", type="Int")
_AVG_FIELD = FieldDef(name="_avg", type="Float")

_TO_MANY_ARGS = {"select", "include", "where", "order_by", "cursor", "take", "skip", "distinct"}
_TO_ONE_ARGS = {"select", "include"}


# ---------------------------------------------------------------------------
# Where-inputs
# ---------------------------------------------------------------------------


def validate_where(schema: Schema, model: ModelDef, where: Any, path: str = "where") -> list[str]:
    """Validate a where-input tree for `model`."""
    if where is None:
        return []
    if not isinstance(where, dict):
        return [f"{path} must be an object"]

    errors: list[str] = []
    for key, condition in where.items():
        p = f"{path}.{key}"
        if key in ("AND", "NOT"):
            subs = condition if isinstance(condition, list) else [condition]
            for i, sub in enumerate(subs):
                errors.extend(validate_where(schema, model, sub, f"{p}[{i}]"))
        elif key == "OR":
            if not isinstance(condition, list):
                errors.append(f"{p} must be a list")
                continue
            for i, sub in enumerate(condition):
                errors.extend(validate_where(schema, model, sub, f"{p}[{i}]"))
        elif key in model.fields:
            errors.extend(validate_scalar_filter(model.fields[key], condition, p))
        elif key in model.relations:
            errors.extend(_validate_relation_filter(schema, model, key, condition, p))
        elif (columns := _compound_columns(model, key)) is not None:
            if not isinstance(condition, dict) or set(condition) != set(columns):
                errors.append(f"{p} requires exactly {list(columns)}")
                continue
            for col in columns:
                errors.extend(_validate_operand(model.fields[col], condition[col], f"{p}.{col}"))
        else:
            errors.append(f"Unknown field {model.name}.{key} at {path}")
    return errors


def validate_unique_where(schema: Schema, model: ModelDef, where: Any, path: str = "where") -> list[str]:
    """A where-input that must pin down one row through the id, a unique field, or a compound key."""
    if not isinstance(where, dict):
        return [f"{path} must be an object"]
    errors = validate_where(schema, model, where, path)
    if not has_unique_criterion(model, where):
        keys = [compound_key_name(k) for k in model.unique_keys()]
        errors.append(f"{path} for {model.name} needs at least one of {keys}")
    return errors


def has_unique_criterion(model: ModelDef, where: dict[str, Any]) -> bool:
    for key in model.unique_keys():
        if len(key) == 1:
            value = where.get(key[0])
            if value is not None and not isinstance(value, dict):
                return True
        else:
            value = where.get(compound_key_name(key))
            if isinstance(value, dict) and all(value.get(col) is not None for col in key):
                return True
    return False


def validate_scalar_filter(fdef: FieldDef, condition: Any, path: str) -> list[str]:
    """A bare value, None, or an operator dict for one column."""
    if not is_filter_object(fdef, condition):
        return _validate_operand(fdef, condition, path, allow_none=True)

    errors: list[str] = []
    allowed = SCALAR_OPERATORS[fdef.type]
    if not condition:
        errors.append(f"{path} filter is empty")
    elif set(condition) == {"mode"}:
        errors.append(f"{path}: 'mode' needs another operator to apply to")
    for op, value in condition.items():
        p = f"{path}.{op}"
        if op not in allowed:
            errors.append(f"Operator '{op}' is not supported for {fdef.type} field '{fdef.name}'")
        elif op == "mode":
            if value not in QUERY_MODES:
                errors.append(f"{p} must be one of {sorted(QUERY_MODES)}")
        elif op in ("in", "not_in"):
            if not isinstance(value, (list, tuple)):
                errors.append(f"{p} must be a list")
                continue
            for i, item in enumerate(value):
                errors.extend(_validate_operand(fdef, item, f"{p}[{i}]"))
        elif op == "not":
            if is_filter_object(fdef, value):
                errors.extend(validate_scalar_filter(fdef, value, p))
            else:
                errors.extend(_validate_operand(fdef, value, p, allow_none=True))
        elif op == "equals":
            errors.extend(_validate_operand(fdef, value, p, allow_none=True))
        elif op in ("contains", "starts_with", "ends_with"):
            if not isinstance(value, str):
                errors.append(f"{p} must be a string")
        else:
            errors.extend(_validate_operand(fdef, value, p))
    return errors


def _validate_relation_filter(schema: Schema, model: ModelDef, name: str, condition: Any, path: str) -> list[str]:
    rel = model.relations[name]
    target = schema[rel.target]

    if rel.to_many:
        if not isinstance(condition, dict) or not condition:
            return [f"{path} needs one of {sorted(TO_MANY_FILTERS)}"]
        errors: list[str] = []
        for op, sub in condition.items():
            if op not in TO_MANY_FILTERS:
                errors.append(f"Relation filter '{op}' is not supported on to-many relation {model.name}.{name}")
            else:
                errors.extend(validate_where(schema, target, sub, f"{path}.{op}"))
        return errors

    if condition is None:
        return []
    if not isinstance(condition, dict):
        return [f"{path} must be an object or None"]
    if set(condition) & TO_MANY_FILTERS:
        return [f"Relation filters {sorted(TO_MANY_FILTERS)} need a to-many relation; {model.name}.{name} is to-one"]
    if condition and set(condition) <= TO_ONE_FILTERS:
        errors = []
        for op, sub in condition.items():
            errors.extend(validate_where(schema, target, sub, f"{path}.{op}"))
        return errors
    return validate_where(schema, target, condition, path)


def _validate_operand(fdef: FieldDef, value: Any, path: str, allow_none: bool = False) -> list[str]:
    if value is None:
        return [] if allow_none else [f"{path} cannot be null"]
    if fdef.type in NUMERIC_TYPES:
        if isinstance(value, bool):
            return [f"{path} must be a number"]
        if isinstance(value, (int, float, Decimal)):
            return []
        if fdef.type == "Decimal" and isinstance(value, str):
            try:
                Decimal(value)
            except InvalidOperation:
                return [f"{path} must be a number"]
            return []
        return [f"{path} must be a number"]
    try:
        coerce_value(fdef, value)
    except ValueError as exc:
        return [f"{path}: {exc}"]
    return []


def _compound_columns(model: ModelDef, key: str) -> tuple[str, ...] | None:
    for columns in model.unique_together:
        if compound_key_name(columns) == key:
            return tuple(columns)
    return None


# ---------------------------------------------------------------------------
# Ordering, distinct, selection
# ---------------------------------------------------------------------------


def validate_order_by(schema: Schema, model: ModelDef, order_by: Any, path: str = "order_by") -> list[str]:
    if order_by is None:
        return []
    items = order_by if isinstance(order_by, list) else [order_by]
    if not all(isinstance(i, dict) for i in items):
        return [f"{path} must be an object or a list of objects"]

    errors: list[str] = []
    for spec in normalize_order_by(order_by):
        (name, value), = spec.items()
        p = f"{path}.{name}"
        if name in model.fields:
            fdef = model.fields[name]
            if fdef.type == "Json":
                errors.append(f"Cannot order by Json field {model.name}.{name}")
            errors.extend(_validate_direction(value, p))
        elif name in model.relations:
            rel = model.relations[name]
            if rel.to_many:
                if not isinstance(value, dict) or set(value) != {"_count"}:
                    errors.append(f"{p} on a to-many relation only accepts {{'_count': 'asc'|'desc'}}")
                else:
                    errors.extend(_validate_direction(value["_count"], f"{p}._count", allow_nulls=False))
            elif not isinstance(value, dict):
                errors.append(f"{p} must be an object")
            else:
                errors.extend(validate_order_by(schema, schema[rel.target], value, p))
        else:
            errors.append(f"Unknown field {model.name}.{name} in {path}")
    return errors


def _validate_direction(value: Any, path: str, allow_nulls: bool = True) -> list[str]:
    if isinstance(value, dict):
        errors: list[str] = []
        extra = set(value) - {"sort", "nulls"}
        if extra:
            errors.append(f"{path} has unknown keys {sorted(extra)}")
        if value.get("sort") not in SORT_ORDERS:
            errors.append(f"{path}.sort must be one of {sorted(SORT_ORDERS)}")
        if "nulls" in value:
            if not allow_nulls:
                errors.append(f"{path} does not accept 'nulls'")
            elif value["nulls"] not in NULLS_ORDERS:
                errors.append(f"{path}.nulls must be one of {sorted(NULLS_ORDERS)}")
        return errors
    direction, _ = sort_direction(value)
    if direction not in SORT_ORDERS:
        return [f"{path} must be one of {sorted(SORT_ORDERS)}"]
    return []


def validate_distinct(model: ModelDef, distinct: list[str] | None) -> list[str]:
    return [
        f"Unknown field {model.name}.{name} in distinct"
        for name in distinct or []
        if name not in model.fields
    ]


def validate_selection(
    schema: Schema,
    model: ModelDef,
    selection: Any,
    kind: str,
    path: str | None = None,
) -> list[str]:
    """Validate a select or include tree."""
    path = path or kind
    if selection is None:
        return []
    if not isinstance(selection, dict):
        return [f"{path} must be an object"]

    errors: list[str] = []
    for key, value in selection.items():
        p = f"{path}.{key}"
        if key == "_count":
            errors.extend(_validate_count_selection(model, value, p))
        elif key in model.fields:
            if kind == "include":
                errors.append(f"{p}: include only accepts relations")
            elif not isinstance(value, bool):
                errors.append(f"{p} must be a boolean")
        elif key in model.relations:
            errors.extend(_validate_relation_selection(schema, model, key, value, p))
        else:
            errors.append(f"Unknown field {model.name}.{key} in {kind}")
    return errors


def _validate_relation_selection(schema: Schema, model: ModelDef, name: str, value: Any, path: str) -> list[str]:
    if isinstance(value, bool):
        return []
    if not isinstance(value, dict):
        return [f"{path} must be a boolean or an object"]

    rel = model.relations[name]
    target = schema[rel.target]
    allowed = _TO_MANY_ARGS if rel.to_many else _TO_ONE_ARGS
    errors: list[str] = []
    extra = set(value) - allowed
    if extra:
        errors.append(f"{path} does not accept {sorted(extra)}")
    if "select" in value and "include" in value:
        errors.append(f"{path}: please either use 'include' or 'select', but not both at the same time")
    errors.extend(validate_selection(schema, target, value.get("select"), "select", f"{path}.select"))
    errors.extend(validate_selection(schema, target, value.get("include"), "include", f"{path}.include"))
    if rel.to_many:
        errors.extend(validate_where(schema, target, value.get("where"), f"{path}.where"))
        errors.extend(validate_order_by(schema, target, value.get("order_by"), f"{path}.order_by"))
        errors.extend(validate_distinct(target, value.get("distinct")))
        if value.get("cursor") is not None:
            errors.extend(validate_unique_where(schema, target, value["cursor"], f"{path}.cursor"))
        for key in ("take", "skip"):
            v = value.get(key)
            if v is not None and (isinstance(v, bool) or not isinstance(v, int)):
                errors.append(f"{path}.{key} must be an integer")
        if isinstance(value.get("skip"), int) and value["skip"] < 0:
            errors.append(f"{path}.skip must be >= 0")
    return errors


def _validate_count_selection(model: ModelDef, value: Any, path: str) -> list[str]:
    if value is True:
        return []
    if not isinstance(value, dict) or set(value) != {"select"} or not isinstance(value["select"], dict):
        return [f"{path} must be True or {{'select': {{relation: True}}}}"]
    errors: list[str] = []
    for name, wanted in value["select"].items():
        rel = model.relations.get(name)
        if rel is None or not rel.to_many:
            errors.append(f"{path}.select.{name} is not a to-many relation of {model.name}")
        elif not (isinstance(wanted, bool) or (isinstance(wanted, dict) and set(wanted) <= {"where"})):
            errors.append(f"{path}.select.{name} must be a boolean or {{'where': ...}}")
    return errors


# ---------------------------------------------------------------------------
# Write data
# ---------------------------------------------------------------------------


def validate_create_data(
    schema: Schema,
    model: ModelDef,
    data: Any,
    path: str = "data",
    *,
    parent_relation: str | None = None,
    nested_writes: bool = True,
) -> list[str]:
    """
    Validate create data.

    parent_relation names the relation on `model` that leads back to the record
    being written by an enclosing nested create. Its foreign key is filled in by
    the parent, so it is neither required nor allowed in `data`.
    """
    if not isinstance(data, dict):
        return [f"{path} must be an object"]

    errors: list[str] = []
    implied: set[str] = set()
    if parent_relation is not None:
        back = model.relations[parent_relation]
        if back.owner:
            implied = set(back.fields)

    for key, value in data.items():
        p = f"{path}.{key}"
        if key in model.fields:
            fdef = model.fields[key]
            if key in implied:
                errors.append(f"{p} is set through the parent relation")
                continue
            if value is None and not fdef.optional:
                errors.append(f"{p} cannot be null")
                continue
            errors.extend(_validate_operand(fdef, value, p, allow_none=True))
        elif key in model.relations:
            if not nested_writes:
                errors.append(f"{p}: nested relation writes are not supported here")
            elif key == parent_relation:
                errors.append(f"{p} is set through the parent relation")
            else:
                errors.extend(_validate_relation_write(schema, model, key, value, p, creating=True))
        else:
            errors.append(f"Unknown field {model.name}.{key} in {path}")

    for rel in model.relations.values():
        if rel.owner and rel.name in data and set(rel.fields) & set(data):
            errors.append(f"{path}: give either '{rel.name}' or {list(rel.fields)}, not both")

    for fdef in model.fields.values():
        if not fdef.required_on_create or fdef.name in data or fdef.name in implied:
            continue
        covering = model.foreign_key_relation(fdef.name)
        if covering is not None and covering.name in data:
            continue
        errors.append(f"Missing required field {model.name}.{fdef.name} in {path}")
    return errors


def validate_update_data(
    schema: Schema,
    model: ModelDef,
    data: Any,
    path: str = "data",
    *,
    parent_relation: str | None = None,
    nested_writes: bool = True,
) -> list[str]:
    """Validate update data: column values, atomic number operations, and relation writes."""
    if not isinstance(data, dict):
        return [f"{path} must be an object"]

    errors: list[str] = []
    for key, value in data.items():
        p = f"{path}.{key}"
        if key in model.fields:
            errors.extend(_validate_field_update(model.fields[key], value, p))
        elif key in model.relations:
            if not nested_writes:
                errors.append(f"{p}: nested relation writes are not supported here")
            elif key == parent_relation:
                errors.append(f"{p} is set through the parent relation")
            else:
                errors.extend(_validate_relation_write(schema, model, key, value, p, creating=False))
        else:
            errors.append(f"Unknown field {model.name}.{key} in {path}")

    for rel in model.relations.values():
        if rel.owner and rel.name in data and set(rel.fields) & set(data):
            errors.append(f"{path}: give either '{rel.name}' or {list(rel.fields)}, not both")
    return errors


def is_atomic_update(fdef: FieldDef, value: Any) -> bool:
    if not isinstance(value, dict) or not value:
        return False
    if fdef.type == "Json":
        return set(value) == {"set"}
    return True


def _validate_field_update(fdef: FieldDef, value: Any, path: str) -> list[str]:
    if not is_atomic_update(fdef, value):
        if value is None and not fdef.optional:
            return [f"{path} cannot be null"]
        return _validate_operand(fdef, value, path, allow_none=True)

    errors: list[str] = []
    if len(value) != 1:
        errors.append(f"{path} takes exactly one of {sorted(ATOMIC_OPERATIONS)}")
    for op, operand in value.items():
        p = f"{path}.{op}"
        if op not in ATOMIC_OPERATIONS:
            errors.append(f"Unknown update operation '{op}' for {fdef.name}")
        elif op == "set":
            if operand is None and not fdef.optional:
                errors.append(f"{p} cannot be null")
            else:
                errors.extend(_validate_operand(fdef, operand, p, allow_none=True))
        elif fdef.type not in NUMERIC_TYPES:
            errors.append(f"Operation '{op}' needs a numeric field; {fdef.name} is {fdef.type}")
        else:
            errors.extend(_validate_operand(fdef, operand, p))
            if op == "divide" and operand == 0:
                errors.append(f"{p} cannot divide by zero")
    return errors


def _validate_relation_write(
    schema: Schema,
    model: ModelDef,
    name: str,
    value: Any,
    path: str,
    *,
    creating: bool,
) -> list[str]:
    rel = model.relations[name]
    target = schema[rel.target]
    opposite = schema.opposite(model.name, rel)
    back = opposite.name if opposite is not None else None

    if not isinstance(value, dict) or not value:
        return [f"{path} must be an object of nested writes"]

    allowed = TO_MANY_WRITES if rel.to_many else TO_ONE_WRITES
    if creating:
        allowed = allowed & CREATE_WRITES

    def many(v: Any) -> list[Any]:
        return v if rel.to_many and isinstance(v, list) else [v]

    def create_data(v: Any, p: str) -> list[str]:
        return validate_create_data(schema, target, v, p, parent_relation=back)

    def update_data(v: Any, p: str) -> list[str]:
        return validate_update_data(schema, target, v, p, parent_relation=back)

    def unique(v: Any, p: str) -> list[str]:
        return validate_unique_where(schema, target, v, p)

    errors: list[str] = []
    for op, arg in value.items():
        p = f"{path}.{op}"
        if op not in allowed:
            kind = "to-many" if rel.to_many else "to-one"
            where = " inside create" if creating else ""
            errors.append(f"Nested write '{op}' is not supported on {kind} relation {model.name}.{name}{where}")
            continue

        if op == "create":
            for i, item in enumerate(many(arg)):
                errors.extend(create_data(item, f"{p}[{i}]"))
        elif op == "create_many":
            if not isinstance(arg, dict) or not isinstance(arg.get("data"), list):
                errors.append(f"{p} must be {{'data': [...], 'skip_duplicates': bool}}")
                continue
            for i, item in enumerate(arg["data"]):
                errors.extend(
                    validate_create_data(
                        schema, target, item, f"{p}.data[{i}]", parent_relation=back, nested_writes=False
                    )
                )
        elif op == "connect":
            for i, item in enumerate(many(arg)):
                errors.extend(unique(item, f"{p}[{i}]"))
        elif op == "connect_or_create":
            for i, item in enumerate(many(arg)):
                if not isinstance(item, dict) or set(item) != {"where", "create"}:
                    errors.append(f"{p}[{i}] must be {{'where': ..., 'create': ...}}")
                    continue
                errors.extend(unique(item["where"], f"{p}[{i}].where"))
                errors.extend(create_data(item["create"], f"{p}[{i}].create"))
        elif op == "set":
            if not isinstance(arg, list):
                errors.append(f"{p} must be a list")
                continue
            for i, item in enumerate(arg):
                errors.extend(unique(item, f"{p}[{i}]"))
        elif op in ("disconnect", "delete"):
            if not rel.to_many:
                if arg is not True:
                    errors.append(f"{p} on a to-one relation must be True")
                elif rel.owner and not rel.optional:
                    errors.append(f"Cannot {op} required relation {model.name}.{name}")
                elif op == "disconnect" and not rel.owner and opposite is not None and not opposite.optional:
                    errors.append(f"Cannot disconnect {model.name}.{name}: {target.name}.{back} is required")
                continue
            for i, item in enumerate(many(arg)):
                errors.extend(unique(item, f"{p}[{i}]"))
        elif op == "update":
            if not rel.to_many:
                errors.extend(update_data(arg, p))
                continue
            for i, item in enumerate(many(arg)):
                if not isinstance(item, dict) or set(item) != {"where", "data"}:
                    errors.append(f"{p}[{i}] must be {{'where': ..., 'data': ...}}")
                    continue
                errors.extend(unique(item["where"], f"{p}[{i}].where"))
                errors.extend(update_data(item["data"], f"{p}[{i}].data"))
        elif op == "update_many":
            for i, item in enumerate(many(arg)):
                if not isinstance(item, dict) or set(item) != {"where", "data"}:
                    errors.append(f"{p}[{i}] must be {{'where': ..., 'data': ...}}")
                    continue
                errors.extend(validate_where(schema, target, item["where"], f"{p}[{i}].where"))
                errors.extend(
                    validate_update_data(
                        schema, target, item["data"], f"{p}[{i}].data", parent_relation=back, nested_writes=False
                    )
                )
        elif op == "delete_many":
            for i, item in enumerate(many(arg)):
                errors.extend(validate_where(schema, target, item, f"{p}[{i}]"))
        elif op == "upsert":
            keys = {"where", "create", "update"} if rel.to_many else {"create", "update"}
            for i, item in enumerate(many(arg)):
                if not isinstance(item, dict) or set(item) != keys:
                    errors.append(f"{p}[{i}] must have exactly {sorted(keys)}")
                    continue
                if rel.to_many:
                    errors.extend(unique(item["where"], f"{p}[{i}].where"))
                errors.extend(create_data(item["create"], f"{p}[{i}].create"))
                errors.extend(update_data(item["update"], f"{p}[{i}].update"))
    return errors


# ---------------------------------------------------------------------------
# Aggregates and group-by
# ---------------------------------------------------------------------------


def validate_aggregates(model: ModelDef, spec: dict[str, Any]) -> list[str]:
    """Check each aggregate applies to the fields it names."""
    errors: list[str] = []
    for agg, selection in spec.items():
        if agg == "_count":
            if selection is True:
                continue
            for name in selection:
                if name != "_all" and name not in model.fields:
                    errors.append(f"Unknown field {model.name}.{name} in _count")
            continue
        for name in selection:
            fdef = model.fields.get(name)
            if fdef is None:
                errors.append(f"Unknown field {model.name}.{name} in {agg}")
            elif not _aggregate_applies(agg, fdef):
                errors.append(f"{agg} is not supported for {fdef.type} field '{name}'")
    return errors


def _aggregate_applies(agg: str, fdef: FieldDef) -> bool:
    if agg == "_count":
        return True
    if agg in ("_sum", "_avg"):
        return fdef.type in NUMERIC_TYPES
    return fdef.type in ORDERED_TYPES or fdef.type == "Boolean"


def validate_group_by(
    schema: Schema,
    model: ModelDef,
    by: list[str],
    having: dict[str, Any] | None,
    order_by: Any,
    aggregates: dict[str, Any],
) -> list[str]:
    """Schema-aware group-by checks. The by/having/order_by membership rules run earlier."""
    errors: list[str] = []
    for name in by:
        fdef = model.fields.get(name)
        if fdef is None:
            errors.append(f"Unknown field {model.name}.{name} in by")
        elif fdef.type == "Json":
            errors.append(f"Cannot group by Json field {model.name}.{name}")

    errors.extend(_validate_having(model, having, "having"))
    errors.extend(validate_aggregates(model, aggregates))

    for spec in normalize_order_by(order_by):
        (name, value), = spec.items()
        p = f"order_by.{name}"
        if name in AGGREGATES:
            if not isinstance(value, dict) or len(value) != 1:
                errors.append(f"{p} must name exactly one field")
                continue
            (field_name, direction), = value.items()
            if name == "_count" and field_name == "_all":
                errors.extend(_validate_direction(direction, p))
                continue
            fdef = model.fields.get(field_name)
            if fdef is None:
                errors.append(f"Unknown field {model.name}.{field_name} in {p}")
            elif not _aggregate_applies(name, fdef):
                errors.append(f"{name} is not supported for {fdef.type} field '{field_name}'")
            errors.extend(_validate_direction(direction, f"{p}.{field_name}"))
        else:
            errors.extend(_validate_direction(value, p))
    return errors


def _validate_having(model: ModelDef, having: Any, path: str) -> list[str]:
    if having is None:
        return []
    if not isinstance(having, dict):
        return [f"{path} must be an object"]
    errors: list[str] = []
    for key, condition in having.items():
        p = f"{path}.{key}"
        if key in ("AND", "OR", "NOT"):
            if key == "OR" and not isinstance(condition, list):
                errors.append(f"{p} must be a list")
                continue
            subs = condition if isinstance(condition, list) else [condition]
            for i, sub in enumerate(subs):
                errors.extend(_validate_having(model, sub, f"{p}[{i}]"))
            continue
        fdef = model.fields.get(key)
        if fdef is None:
            errors.append(f"Unknown field {model.name}.{key} in having")
            continue
        if not isinstance(condition, dict):
            errors.extend(validate_scalar_filter(fdef, condition, p))
            continue
        scalar_part = {k: v for k, v in condition.items() if k not in AGGREGATES}
        if scalar_part:
            errors.extend(validate_scalar_filter(fdef, scalar_part, p))
        for agg in AGGREGATES & set(condition):
            if not _aggregate_applies(agg, fdef):
                errors.append(f"{agg} is not supported for {fdef.type} field '{key}'")
                continue
            compare_as = _COUNT_FIELD if agg == "_count" else _AVG_FIELD if agg == "_avg" and fdef.type != "Decimal" else fdef
            errors.extend(validate_scalar_filter(compare_as, condition[agg], f"{p}.{agg}"))
    return errors


def validate_count_select(model: ModelDef, select: Any) -> list[str]:
    if select is None or select is True:
        return []
    return [
        f"Unknown field {model.name}.{name} in count select"
        for name in select
        if name != "_all" and name not in model.fields
    ]
