"""
FleetQL Query Kernel — Client

Client(schema) exposes one ModelDelegate per model, reachable as a snake_case
attribute (client.driver_profile) or through client.delegate("DriverProfile").

Every delegate call follows the same path:
  1. Parse the arguments into a pydantic model (shape).
  2. Validate them against the schema (fields, operators, types).
  3. Execute against the store. Writes run on a snapshot that is restored
     if anything raises, so a failed write leaves the store unchanged.
  4. Shape the result with select / include.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, TypeVar

from engine.query.aggregate import aggregate_records, compute, group_records
from engine.query.args import (
    AggregateArgs,
    CountArgs,
    CreateArgs,
    CreateManyArgs,
    DeleteArgs,
    DeleteManyArgs,
    FindManyArgs,
    FindUniqueArgs,
    GroupByArgs,
    UpdateArgs,
    UpdateManyArgs,
    UpsertArgs,
    parse_args,
)
from engine.query.errors import QueryValidationError, RecordNotFoundError
from engine.query.filters import filter_records
from engine.query.mutations import Writer
from engine.query.ordering import apply_distinct, order_records, paginate
from engine.query.projection import project, project_many
from engine.query.store import MemoryStore
from engine.query.types import ModelDef, Schema
from engine.query.validation import (
    validate_aggregates,
    validate_count_select,
    validate_create_data,
    validate_distinct,
    validate_group_by,
    validate_order_by,
    validate_selection,
    validate_unique_where,
    validate_update_data,
    validate_where,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def attribute_name(model_name: str) -> str:
    """DriverProfile → driver_profile."""
    return _CAMEL_BOUNDARY.sub("_", model_name).lower()


class Client:
    """Entry point: one delegate per model over a shared store."""

    def __init__(self, schema: Schema, store: MemoryStore | None = None, log_queries: bool = False) -> None:
        self.schema = schema
        self.store = store if store is not None else MemoryStore(schema)
        self.log_queries = log_queries
        self._delegates: dict[str, ModelDelegate] = {}
        for name, model_def in schema.models.items():
            attr = attribute_name(name)
            if hasattr(self, attr):
                raise ValueError(f"Model {name} clashes with client attribute '{attr}'")
            delegate = ModelDelegate(self, model_def)
            self._delegates[name] = delegate
            setattr(self, attr, delegate)

    def delegate(self, model_name: str) -> ModelDelegate:
        try:
            return self._delegates[model_name]
        except KeyError:
            raise QueryValidationError([f"Unknown model: {model_name}"]) from None

    @contextmanager
    def transaction(self) -> Iterator[Client]:
        """Group several operations: if the block raises, every write in it is undone."""
        snap = self.store.snapshot()
        try:
            yield self
        except Exception:
            self.store.restore(snap)
            logger.warning("transaction rolled back")
            raise

    def _write(self, model: ModelDef, operation: str, fn: Callable[[], T]) -> T:
        snap = self.store.snapshot()
        try:
            return fn()
        except Exception as e:
            self.store.restore(snap)
            logger.warning("%s.%s rejected: %s", model.name, operation, e)
            raise


class ModelDelegate:
    """Query and write operations for one model."""

    def __init__(self, client: Client, model: ModelDef) -> None:
        self.client = client
        self.model = model

    @property
    def schema(self) -> Schema:
        return self.client.schema

    @property
    def store(self) -> MemoryStore:
        return self.client.store

    def __repr__(self) -> str:
        return f"ModelDelegate({self.model.name})"

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def find_unique(self, **args: Any) -> dict[str, Any] | None:
        a = self._parse(FindUniqueArgs, "find_unique", args)
        self._check(
            "find_unique",
            validate_unique_where(self.schema, self.model, a.where)
            + self._selection_errors(a.select, a.include),
        )
        row = self.store.find_unique(self.model, a.where)
        if row is None:
            return None
        return project(self.schema, self.model, row, self.store, a.select, a.include)

    def find_unique_or_throw(self, **args: Any) -> dict[str, Any]:
        found = self.find_unique(**args)
        if found is None:
            raise RecordNotFoundError(self.model.name, "find_unique_or_throw")
        return found

    def find_first(self, **args: Any) -> dict[str, Any] | None:
        a = self._parse(FindManyArgs, "find_first", args)
        self._check_read("find_first", a)
        take = a.take if a.take is not None else 1
        rows = self._pipeline(a.where, a.order_by, a.cursor, a.skip, take, a.distinct)
        if not rows:
            return None
        row = rows[-1] if take < 0 else rows[0]
        return project(self.schema, self.model, row, self.store, a.select, a.include)

    def find_first_or_throw(self, **args: Any) -> dict[str, Any]:
        found = self.find_first(**args)
        if found is None:
            raise RecordNotFoundError(self.model.name, "find_first_or_throw")
        return found

    def find_many(self, **args: Any) -> list[dict[str, Any]]:
        a = self._parse(FindManyArgs, "find_many", args)
        self._check_read("find_many", a)
        rows = self._pipeline(a.where, a.order_by, a.cursor, a.skip, a.take, a.distinct)
        return project_many(self.schema, self.model, rows, self.store, a.select, a.include)

    def count(self, **args: Any) -> int | dict[str, int]:
        a = self._parse(CountArgs, "count", args)
        self._check(
            "count",
            self._window_errors(a.where, a.order_by, a.cursor)
            + validate_count_select(self.model, a.select),
        )
        rows = self._pipeline(a.where, a.order_by, a.cursor, a.skip, a.take)
        if a.select is None:
            return len(rows)
        if a.select is True:
            return {"_all": len(rows)}
        return {
            name: compute("_count", self.model.fields.get(name), name, rows)
            for name, wanted in a.select.items()
            if wanted
        }

    def aggregate(self, **args: Any) -> dict[str, Any]:
        a = self._parse(AggregateArgs, "aggregate", args)
        spec = a.aggregates()
        self._check(
            "aggregate",
            self._window_errors(a.where, a.order_by, a.cursor) + validate_aggregates(self.model, spec),
        )
        rows = self._pipeline(a.where, a.order_by, a.cursor, a.skip, a.take)
        return aggregate_records(self.model, rows, spec)

    def group_by(self, **args: Any) -> list[dict[str, Any]]:
        a = self._parse(GroupByArgs, "group_by", args)
        spec = a.aggregates()
        self._check(
            "group_by",
            validate_where(self.schema, self.model, a.where)
            + validate_group_by(self.schema, self.model, a.by, a.having, a.order_by, spec),
        )
        rows = filter_records(self.schema, self.model, self.store.rows(self.model.name), a.where, self.store)
        return group_records(
            self.model,
            rows,
            a.by,
            spec,
            having=a.having,
            order_by=a.order_by,
            skip=a.skip,
            take=a.take,
        )

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def create(self, **args: Any) -> dict[str, Any]:
        a = self._parse(CreateArgs, "create", args)
        self._check(
            "create",
            validate_create_data(self.schema, self.model, a.data)
            + self._selection_errors(a.select, a.include),
        )
        row = self.client._write(self.model, "create", lambda: self._writer().create(self.model, a.data))
        return project(self.schema, self.model, row, self.store, a.select, a.include)

    def create_many(self, **args: Any) -> dict[str, int]:
        a = self._parse(CreateManyArgs, "create_many", args)
        errors = self._create_many_errors(a.data)
        if a.select is not None:
            errors.append("create_many does not return records; use create_many_and_return")
        self._check("create_many", errors)
        created = self.client._write(
            self.model,
            "create_many",
            lambda: self._writer().create_many(self.model, a.data, a.skip_duplicates),
        )
        return {"count": len(created)}

    def create_many_and_return(self, **args: Any) -> list[dict[str, Any]]:
        a = self._parse(CreateManyArgs, "create_many_and_return", args)
        self._check(
            "create_many_and_return",
            self._create_many_errors(a.data) + validate_selection(self.schema, self.model, a.select, "select"),
        )
        created = self.client._write(
            self.model,
            "create_many_and_return",
            lambda: self._writer().create_many(self.model, a.data, a.skip_duplicates),
        )
        return project_many(self.schema, self.model, created, self.store, a.select)

    def update(self, **args: Any) -> dict[str, Any]:
        a = self._parse(UpdateArgs, "update", args)
        self._check(
            "update",
            validate_unique_where(self.schema, self.model, a.where)
            + validate_update_data(self.schema, self.model, a.data)
            + self._selection_errors(a.select, a.include),
        )

        def run() -> dict[str, Any]:
            row = self._require(a.where, "update")
            return self._writer().update(self.model, row, a.data)

        row = self.client._write(self.model, "update", run)
        return project(self.schema, self.model, row, self.store, a.select, a.include)

    def update_many(self, **args: Any) -> dict[str, int]:
        a = self._parse(UpdateManyArgs, "update_many", args)
        self._check(
            "update_many",
            validate_where(self.schema, self.model, a.where)
            + validate_update_data(self.schema, self.model, a.data, nested_writes=False),
        )
        count = self.client._write(
            self.model, "update_many", lambda: self._writer().update_many(self.model, a.where, a.data)
        )
        return {"count": count}

    def upsert(self, **args: Any) -> dict[str, Any]:
        a = self._parse(UpsertArgs, "upsert", args)
        self._check(
            "upsert",
            validate_unique_where(self.schema, self.model, a.where)
            + validate_create_data(self.schema, self.model, a.create, "create")
            + validate_update_data(self.schema, self.model, a.update, "update")
            + self._selection_errors(a.select, a.include),
        )

        def run() -> dict[str, Any]:
            writer = self._writer()
            row = self.store.find_unique(self.model, a.where)
            if row is None:
                return writer.create(self.model, a.create)
            return writer.update(self.model, row, a.update)

        row = self.client._write(self.model, "upsert", run)
        return project(self.schema, self.model, row, self.store, a.select, a.include)

    def delete(self, **args: Any) -> dict[str, Any]:
        a = self._parse(DeleteArgs, "delete", args)
        self._check(
            "delete",
            validate_unique_where(self.schema, self.model, a.where)
            + self._selection_errors(a.select, a.include),
        )

        def run() -> dict[str, Any]:
            row = self._require(a.where, "delete")
            # shape before the row and its relations go away
            result = project(self.schema, self.model, row, self.store, a.select, a.include)
            self.store.delete_row(self.model, row)
            return result

        return self.client._write(self.model, "delete", run)

    def delete_many(self, **args: Any) -> dict[str, int]:
        a = self._parse(DeleteManyArgs, "delete_many", args)
        self._check("delete_many", validate_where(self.schema, self.model, a.where))
        count = self.client._write(self.model, "delete_many", lambda: self._writer().delete_many(self.model, a.where))
        return {"count": count}

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    def _parse(self, cls: type, operation: str, args: dict[str, Any]) -> Any:
        if self.client.log_queries:
            logger.debug("%s.%s %r", self.model.name, operation, args)
        return parse_args(cls, self.model.name, operation, args)

    def _check(self, operation: str, errors: list[str]) -> None:
        if errors:
            raise QueryValidationError(errors, self.model.name, operation)

    def _check_read(self, operation: str, a: FindManyArgs) -> None:
        self._check(
            operation,
            self._window_errors(a.where, a.order_by, a.cursor)
            + validate_distinct(self.model, a.distinct)
            + self._selection_errors(a.select, a.include),
        )

    def _window_errors(self, where: Any, order_by: Any, cursor: Any) -> list[str]:
        errors = validate_where(self.schema, self.model, where)
        errors += validate_order_by(self.schema, self.model, order_by)
        if cursor is not None:
            errors += validate_unique_where(self.schema, self.model, cursor, "cursor")
        return errors

    def _selection_errors(self, select: Any, include: Any) -> list[str]:
        return validate_selection(self.schema, self.model, select, "select") + validate_selection(
            self.schema, self.model, include, "include"
        )

    def _create_many_errors(self, data: list[dict[str, Any]]) -> list[str]:
        errors: list[str] = []
        for i, item in enumerate(data):
            errors.extend(validate_create_data(self.schema, self.model, item, f"data[{i}]", nested_writes=False))
        return errors

    def _pipeline(
        self,
        where: Any,
        order_by: Any,
        cursor: Any,
        skip: int | None,
        take: int | None,
        distinct: list[str] | None = None,
    ) -> list[dict[str, Any]]:
        """filter → order → distinct → cursor → skip → take"""
        rows = filter_records(self.schema, self.model, self.store.rows(self.model.name), where, self.store)
        rows = order_records(self.schema, self.model, rows, order_by, self.store)
        rows = apply_distinct(rows, distinct)
        return paginate(self.schema, self.model, rows, self.store, cursor=cursor, skip=skip, take=take)

    def _require(self, where: dict[str, Any], operation: str) -> dict[str, Any]:
        row = self.store.find_unique(self.model, where)
        if row is None:
            raise RecordNotFoundError(self.model.name, operation)
        return row

    def _writer(self) -> Writer:
        return Writer(self.schema, self.store)
