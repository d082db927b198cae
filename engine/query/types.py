"""
FleetQL Query Kernel — Shared Types

Schema declarations used across validation, filters, ordering, aggregation,
mutations and the client. These are the contracts that bind the kernel together.

A schema is data, not code: models declare their scalar fields and relations,
and every operation works generically off those declarations.

Relations are described symmetrically. For a record of model A, the related
rows of relation R are the rows of R.target whose `references` columns equal
the record's `fields` columns. The side holding the foreign key is the owner.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

# ---------------------------------------------------------------------------
# Regex patterns
# ---------------------------------------------------------------------------

NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,63}$")
MODEL_NAME_PATTERN = re.compile(r"^[A-Z][A-Za-z0-9]{0,63}$")


# ---------------------------------------------------------------------------
# Scalar type registry
# ---------------------------------------------------------------------------

SCALAR_TYPES: set[str] = {
    "String",
    "Int",
    "Float",
    "Decimal",
    "Boolean",
    "DateTime",
    "Json",
    "Enum",
}

NUMERIC_TYPES: set[str] = {"Int", "Float", "Decimal"}

# Types that have a total order for _min/_max and range operators
ORDERED_TYPES: set[str] = NUMERIC_TYPES | {"String", "DateTime", "Enum"}

DEFAULT_GENERATORS: set[str] = {"uuid", "autoincrement", "now"}

ON_DELETE_ACTIONS: set[str] = {"cascade", "set_null", "restrict"}

QUERY_MODES: set[str] = {"default", "insensitive"}

SORT_ORDERS: set[str] = {"asc", "desc"}

NULLS_ORDERS: set[str] = {"first", "last"}

# Operators allowed in a scalar filter, per column type
_EQUALITY_OPERATORS = {"equals", "not", "in", "not_in"}
_RANGE_OPERATORS = {"lt", "lte", "gt", "gte"}
_STRING_OPERATORS = {"contains", "starts_with", "ends_with", "mode"}

SCALAR_OPERATORS: dict[str, set[str]] = {
    "String": _EQUALITY_OPERATORS | _RANGE_OPERATORS | _STRING_OPERATORS,
    "Int": _EQUALITY_OPERATORS | _RANGE_OPERATORS,
    "Float": _EQUALITY_OPERATORS | _RANGE_OPERATORS,
    "Decimal": _EQUALITY_OPERATORS | _RANGE_OPERATORS,
    "DateTime": _EQUALITY_OPERATORS | _RANGE_OPERATORS,
    "Enum": _EQUALITY_OPERATORS,
    "Boolean": {"equals", "not"},
    "Json": {"equals", "not"},
}

COMBINATORS: set[str] = {"AND", "OR", "NOT"}

TO_MANY_FILTERS: set[str] = {"some", "every", "none"}
TO_ONE_FILTERS: set[str] = {"is", "is_not"}

AGGREGATES: set[str] = {"_count", "_sum", "_avg", "_min", "_max"}

ATOMIC_OPERATIONS: set[str] = {"set", "increment", "decrement", "multiply", "divide"}

TO_ONE_WRITES: set[str] = {
    "create",
    "connect",
    "connect_or_create",
    "update",
    "upsert",
    "disconnect",
    "delete",
}

TO_MANY_WRITES: set[str] = {
    "create",
    "create_many",
    "connect",
    "connect_or_create",
    "set",
    "disconnect",
    "delete",
    "update",
    "update_many",
    "delete_many",
    "upsert",
}

# Nested writes accepted inside create data (the rest need an existing row)
CREATE_WRITES: set[str] = {"create", "create_many", "connect", "connect_or_create"}


# ---------------------------------------------------------------------------
# Schema declarations
# ---------------------------------------------------------------------------


@dataclass
class FieldDef:
    """A scalar column."""

    name: str
    type: str
    optional: bool = False
    id: bool = False
    unique: bool = False
    default: Any = None  # literal, callable, or one of DEFAULT_GENERATORS
    updated_at: bool = False
    enum_values: tuple[str, ...] | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not None or self.updated_at

    @property
    def required_on_create(self) -> bool:
        return not self.optional and not self.has_default


@dataclass
class RelationDef:
    """One side of a relation between two models."""

    name: str
    target: str
    fields: tuple[str, ...]
    references: tuple[str, ...]
    to_many: bool = False
    owner: bool = False  # True when `fields` hold the foreign key
    optional: bool = True
    on_delete: str | None = None  # owner side only; defaults from optionality

    @property
    def delete_action(self) -> str:
        if self.on_delete is not None:
            return self.on_delete
        return "set_null" if self.optional else "restrict"


@dataclass
class ModelDef:
    """A table: scalar fields, relations, and compound unique keys."""

    name: str
    fields: dict[str, FieldDef] = field(default_factory=dict)
    relations: dict[str, RelationDef] = field(default_factory=dict)
    unique_together: list[tuple[str, ...]] = field(default_factory=list)

    @property
    def id_field(self) -> FieldDef:
        for f in self.fields.values():
            if f.id:
                return f
        raise KeyError(f"{self.name} has no id field")

    def unique_keys(self) -> list[tuple[str, ...]]:
        """All unique column tuples: id first, then single uniques, then compounds."""
        keys: list[tuple[str, ...]] = [(self.id_field.name,)]
        keys.extend((f.name,) for f in self.fields.values() if f.unique and not f.id)
        keys.extend(tuple(k) for k in self.unique_together)
        return keys

    def foreign_key_relation(self, field_name: str) -> RelationDef | None:
        """Owner-side relation whose foreign key includes `field_name`."""
        for rel in self.relations.values():
            if rel.owner and field_name in rel.fields:
                return rel
        return None


class Schema:
    """A named collection of models with resolved relation targets."""

    def __init__(self, models: list[ModelDef]) -> None:
        self.models: dict[str, ModelDef] = {m.name: m for m in models}
        errors = self.check()
        if errors:
            raise ValueError("Invalid schema: " + "; ".join(errors))

    def __contains__(self, name: str) -> bool:
        return name in self.models

    def __getitem__(self, name: str) -> ModelDef:
        return self.models[name]

    def check(self) -> list[str]:
        """Return a list of schema errors. Empty list = valid."""
        errors: list[str] = []
        for model in self.models.values():
            if not MODEL_NAME_PATTERN.match(model.name):
                errors.append(f"Invalid model name: {model.name}")
            ids = [f.name for f in model.fields.values() if f.id]
            if len(ids) != 1:
                errors.append(f"{model.name} must declare exactly one id field")
            for f in model.fields.values():
                if not NAME_PATTERN.match(f.name):
                    errors.append(f"Invalid field name: {model.name}.{f.name}")
                if f.type not in SCALAR_TYPES:
                    errors.append(f"Unknown type for {model.name}.{f.name}: {f.type}")
                if f.type == "Enum" and not f.enum_values:
                    errors.append(f"{model.name}.{f.name} is an Enum without values")
            for rel in model.relations.values():
                if rel.name in model.fields:
                    errors.append(f"{model.name}.{rel.name} is both a field and a relation")
                target = self.models.get(rel.target)
                if target is None:
                    errors.append(f"{model.name}.{rel.name} targets unknown model {rel.target}")
                    continue
                if len(rel.fields) != len(rel.references) or not rel.fields:
                    errors.append(f"{model.name}.{rel.name} has mismatched fields/references")
                for col in rel.fields:
                    if col not in model.fields:
                        errors.append(f"{model.name}.{rel.name} uses unknown column {col}")
                for col in rel.references:
                    if col not in target.fields:
                        errors.append(f"{model.name}.{rel.name} references unknown column {rel.target}.{col}")
                if rel.on_delete is not None and rel.on_delete not in ON_DELETE_ACTIONS:
                    errors.append(f"{model.name}.{rel.name} has invalid on_delete {rel.on_delete}")
                if rel.owner and rel.to_many:
                    errors.append(f"{model.name}.{rel.name} cannot own a to-many relation")
                if not rel.owner:
                    other = self.opposite(model.name, rel)
                    if other is None or not other.owner:
                        errors.append(f"{model.name}.{rel.name} has no owning side on {rel.target}")
            for key in model.unique_together:
                for col in key:
                    if col not in model.fields:
                        errors.append(f"{model.name} compound unique uses unknown column {col}")
        return errors

    def back_relations(self, model_name: str) -> list[tuple[ModelDef, RelationDef]]:
        """Owner-side relations in other models that point at `model_name`."""
        found: list[tuple[ModelDef, RelationDef]] = []
        for model in self.models.values():
            for rel in model.relations.values():
                if rel.owner and rel.target == model_name:
                    found.append((model, rel))
        return found

    def opposite(self, model_name: str, rel: RelationDef) -> RelationDef | None:
        """The relation on the target model that describes the same link."""
        target = self.models[rel.target]
        for other in target.relations.values():
            if (
                other.target == model_name
                and other.fields == rel.references
                and other.references == rel.fields
            ):
                return other
        return None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def is_valid_name(value: str) -> bool:
    """Check if a string is a valid field or relation name (snake_case, max 64 chars)."""
    return bool(NAME_PATTERN.match(value))


def now() -> datetime:
    """Current UTC time."""
    return datetime.now(UTC)


def compound_key_name(columns: tuple[str, ...]) -> str:
    """Where-unique key of a compound unique: ("a", "b") → "a_b"."""
    return "_".join(columns)


def coerce_value(fdef: FieldDef, value: Any) -> Any:
    """
    Convert an input value to the column's Python type.

    DateTime accepts datetime, date or ISO 8601 strings. Decimal accepts
    numbers and numeric strings. Int accepts integral floats. Raises
    ValueError on values that cannot represent the column type.
    """
    if value is None:
        return None
    t = fdef.type
    if t == "String":
        if not isinstance(value, str):
            raise ValueError(f"expected string, got {type(value).__name__}")
        return value
    if t == "Boolean":
        if not isinstance(value, bool):
            raise ValueError(f"expected boolean, got {type(value).__name__}")
        return value
    if t == "Int":
        if isinstance(value, bool):
            raise ValueError("expected integer, got bool")
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, Decimal) and value == value.to_integral_value():
            return int(value)
        raise ValueError(f"expected integer, got {value!r}")
    if t == "Float":
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            raise ValueError(f"expected number, got {type(value).__name__}")
        return float(value)
    if t == "Decimal":
        if isinstance(value, bool):
            raise ValueError("expected decimal, got bool")
        if isinstance(value, Decimal):
            return value
        if isinstance(value, (int, str)):
            try:
                return Decimal(value)
            except InvalidOperation as exc:
                raise ValueError(f"expected decimal, got {value!r}") from exc
        if isinstance(value, float):
            return Decimal(str(value))
        raise ValueError(f"expected decimal, got {type(value).__name__}")
    if t == "DateTime":
        if isinstance(value, datetime):
            return value if value.tzinfo else value.replace(tzinfo=UTC)
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day, tzinfo=UTC)
        if isinstance(value, str):
            try:
                parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError as exc:
                raise ValueError(f"expected ISO 8601 datetime, got {value!r}") from exc
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
        raise ValueError(f"expected datetime, got {type(value).__name__}")
    if t == "Enum":
        if value not in (fdef.enum_values or ()):
            raise ValueError(f"expected one of {list(fdef.enum_values or ())}, got {value!r}")
        return value
    # Json: anything JSON-shaped
    return value


def scalar(
    name: str,
    type: str,
    *,
    optional: bool = False,
    id: bool = False,
    unique: bool = False,
    default: Any = None,
    updated_at: bool = False,
    values: tuple[str, ...] | list[str] | None = None,
) -> FieldDef:
    """Shorthand FieldDef constructor for schema declarations."""
    return FieldDef(
        name=name,
        type=type,
        optional=optional,
        id=id,
        unique=unique,
        default=default,
        updated_at=updated_at,
        enum_values=tuple(values) if values is not None else None,
    )


def model(
    name: str,
    fields: list[FieldDef],
    relations: list[RelationDef] | None = None,
    unique_together: list[tuple[str, ...]] | None = None,
) -> ModelDef:
    """Shorthand ModelDef constructor for schema declarations."""
    return ModelDef(
        name=name,
        fields={f.name: f for f in fields},
        relations={r.name: r for r in relations or []},
        unique_together=list(unique_together or []),
    )

