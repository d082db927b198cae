"""
FleetQL Query Kernel — Exceptions

Every failure surfaced by the client derives from QueryError and carries a
stable `code`. Nothing is retried; errors propagate to the caller.
"""

from __future__ import annotations


class QueryError(Exception):
    """Base class for query engine errors."""

    code = "QUERY_ERROR"


class QueryValidationError(QueryError):
    """Arguments are structurally invalid. Raised before any record is read."""

    code = "VALIDATION_ERROR"

    def __init__(self, errors: list[str], model: str | None = None, operation: str | None = None) -> None:
        self.errors = list(errors)
        self.model = model
        self.operation = operation
        where = f"{model}.{operation}: " if model and operation else ""
        super().__init__(where + "; ".join(self.errors))


class RecordNotFoundError(QueryError):
    """A record required by the operation does not exist."""

    code = "RECORD_NOT_FOUND"

    def __init__(self, model: str, operation: str, detail: str | None = None) -> None:
        self.model = model
        self.operation = operation
        message = f"{model}.{operation}: no record found"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class UniqueConstraintError(QueryError):
    """A write would produce two rows with the same unique key."""

    code = "UNIQUE_CONSTRAINT"

    def __init__(self, model: str, fields: tuple[str, ...]) -> None:
        self.model = model
        self.fields = fields
        super().__init__(f"Unique constraint failed on {model}({', '.join(fields)})")


class ForeignKeyConstraintError(QueryError):
    """A foreign key points at a missing row, or a delete is restricted by dependents."""

    code = "FOREIGN_KEY_CONSTRAINT"

    def __init__(self, model: str, relation: str, detail: str = "") -> None:
        self.model = model
        self.relation = relation
        message = f"Foreign key constraint failed on {model}.{relation}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class RelationViolationError(QueryError):
    """A required relation would be left without a related record."""

    code = "REQUIRED_RELATION_VIOLATION"

    def __init__(self, model: str, relation: str) -> None:
        self.model = model
        self.relation = relation
        super().__init__(f"The change would violate the required relation {model}.{relation}")
