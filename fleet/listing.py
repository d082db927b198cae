"""
Listing helpers for paginated, searchable tables of fleet records.
"""

from __future__ import annotations

import math
from typing import Any

from engine.query.client import ModelDelegate
from fleet.config import settings


def page_args(page: int | str | None, page_size: int | None = None) -> dict[str, int]:
    """take/skip for a 1-based page number. Missing or invalid pages fall back to page 1."""
    size = page_size or settings.PAGE_SIZE
    try:
        number = int(page) if page is not None else 1
    except ValueError:
        number = 1
    number = max(number, 1)
    return {"take": size, "skip": (number - 1) * size}


def total_pages(count: int, page_size: int | None = None) -> int:
    size = page_size or settings.PAGE_SIZE
    return max(1, math.ceil(count / size))


def search_where(text: str | None, fields: list[str]) -> dict[str, Any] | None:
    """
    OR of case-insensitive `contains` filters over `fields`.

    A dotted path walks to-one relations: "driver.user.name" filters on the
    name of the trip driver's user. Blank text means no filter.
    """
    if text is None or not text.strip() or not fields:
        return None
    needle = text.strip()

    branches: list[dict[str, Any]] = []
    for path in fields:
        *relations, column = path.split(".")
        condition: dict[str, Any] = {column: {"contains": needle, "mode": "insensitive"}}
        for rel in reversed(relations):
            condition = {rel: condition}
        branches.append(condition)
    return {"OR": branches}


def status_counts(
    delegate: ModelDelegate,
    field: str = "status",
    where: dict[str, Any] | None = None,
) -> dict[str, int]:
    """Row count per value of an Enum field, with every enum value present (zero when unused)."""
    fdef = delegate.model.fields[field]
    counts = {value: 0 for value in fdef.enum_values or ()}
    for row in delegate.group_by(by=[field], where=where, _count={"_all": True}):
        counts[row[field]] = row["_count"]["_all"]
    return counts
