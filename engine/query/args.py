"""
FleetQL Query Kernel — Operation Arguments

Pydantic models for the top-level arguments of every delegate operation.
They check shape only (types, required keys, mutually exclusive options, and the
group-by rules that need no schema). Schema-aware checks live in validation.py.

Aggregate selectors are exposed under their wire names (`_count`, `_sum`, ...)
through aliases, since pydantic treats underscore-prefixed attributes as private.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError, model_validator

from engine.query.errors import QueryValidationError
from engine.query.types import AGGREGATES, COMBINATORS

Where = dict[str, Any]
OrderBy = dict[str, Any] | list[dict[str, Any]]
Selection = dict[str, Any]


class _Args(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True, arbitrary_types_allowed=True)


class _Shaped(_Args):
    """Arguments that return records and can shape them."""

    select: Selection | None = None
    include: Selection | None = None

    @model_validator(mode="after")
    def check_select_or_include(self) -> _Shaped:
        if self.select is not None and self.include is not None:
            raise ValueError("Please either use 'include' or 'select', but not both at the same time")
        return self


class _Aggregates(_Args):
    count: bool | dict[str, bool] | None = Field(default=None, alias="_count")
    sum: dict[str, bool] | None = Field(default=None, alias="_sum")
    avg: dict[str, bool] | None = Field(default=None, alias="_avg")
    min: dict[str, bool] | None = Field(default=None, alias="_min")
    max: dict[str, bool] | None = Field(default=None, alias="_max")

    def aggregates(self) -> dict[str, Any]:
        """The requested aggregates keyed by wire name, skipping unset ones."""
        spec = {
            "_count": self.count,
            "_sum": self.sum,
            "_avg": self.avg,
            "_min": self.min,
            "_max": self.max,
        }
        return {k: v for k, v in spec.items() if v}


class FindUniqueArgs(_Shaped):
    where: Where


class FindManyArgs(_Shaped):
    where: Where | None = None
    order_by: OrderBy | None = None
    cursor: Where | None = None
    take: StrictInt | None = None
    skip: StrictInt | None = Field(default=None, ge=0)
    distinct: list[str] | None = None


class CreateArgs(_Shaped):
    data: dict[str, Any]


class CreateManyArgs(_Args):
    data: list[dict[str, Any]]
    skip_duplicates: bool = False
    select: Selection | None = None


class UpdateArgs(_Shaped):
    where: Where
    data: dict[str, Any]


class UpdateManyArgs(_Args):
    where: Where | None = None
    data: dict[str, Any]


class UpsertArgs(_Shaped):
    where: Where
    create: dict[str, Any]
    update: dict[str, Any]


class DeleteArgs(_Shaped):
    where: Where


class DeleteManyArgs(_Args):
    where: Where | None = None


class CountArgs(_Args):
    where: Where | None = None
    order_by: OrderBy | None = None
    cursor: Where | None = None
    take: StrictInt | None = None
    skip: StrictInt | None = Field(default=None, ge=0)
    select: dict[str, bool] | Literal[True] | None = None


class AggregateArgs(_Aggregates):
    where: Where | None = None
    order_by: OrderBy | None = None
    cursor: Where | None = None
    take: StrictInt | None = None
    skip: StrictInt | None = Field(default=None, ge=0)


class GroupByArgs(_Aggregates):
    by: list[str] = Field(min_length=1)
    where: Where | None = None
    having: Where | None = None
    order_by: OrderBy | None = None
    take: StrictInt | None = None
    skip: StrictInt | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_against_by(self) -> GroupByArgs:
        by = set(self.by)
        errors: list[str] = []

        for name in sorted(having_fields(self.having or {})):
            if name not in by:
                errors.append(f'Field "{name}" used in "having" needs to be provided in "by"')

        for key in order_by_fields(self.order_by):
            if key not in by:
                errors.append(f'Field "{key}" in "order_by" needs to be provided in "by"')

        if (self.take is not None or self.skip is not None) and not self.order_by:
            errors.append('"order_by" needs to be provided when "take" or "skip" is used with "by"')

        if errors:
            raise ValueError("; ".join(errors))
        return self


def having_fields(having: dict[str, Any]) -> set[str]:
    """Every field name mentioned anywhere in a having tree."""
    names: set[str] = set()
    for key, value in having.items():
        if key in COMBINATORS:
            for sub in value if isinstance(value, list) else [value]:
                if isinstance(sub, dict):
                    names |= having_fields(sub)
        else:
            names.add(key)
    return names


def order_by_fields(order_by: OrderBy | None) -> list[str]:
    """Plain field names in a group-by order_by; aggregate orderings are skipped."""
    if not order_by:
        return []
    items = order_by if isinstance(order_by, list) else [order_by]
    return [key for item in items for key in item if key not in AGGREGATES]


def parse_args(cls: type[_Args], model: str, operation: str, values: dict[str, Any]) -> Any:
    """Build an argument model, converting pydantic errors into QueryValidationError."""
    try:
        return cls.model_validate(values)
    except ValidationError as exc:
        messages = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err["loc"])
            msg = err["msg"].removeprefix("Value error, ")
            messages.append(f"{loc}: {msg}" if loc else msg)
        raise QueryValidationError(messages, model, operation) from exc
