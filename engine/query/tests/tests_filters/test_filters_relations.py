"""
FleetQL Query Kernel -- Relation Filter Tests

to-many: some / every / none (every is true for rows with no related records)
to-one:  is / is_not, bare where shorthand, None for "no related row"
Relation filters nest: members of teams that have a project over a budget.
"""

import pytest

from engine.query.errors import QueryValidationError


def _names(records):
    return [r["name"] for r in records]


# ============================================================================
# to-many
# ============================================================================


class TestToMany:
    def test_some(self, seeded):
        result = seeded.member.find_many(where={"badges": {"some": {"label": "oncall"}}})
        assert _names(result) == ["Ann", "Bob"]

    def test_some_empty_where_means_any_related(self, seeded):
        result = seeded.member.find_many(where={"badges": {"some": {}}})
        assert _names(result) == ["Ann", "Bob", "EVE"]

    def test_none(self, seeded):
        result = seeded.member.find_many(where={"badges": {"none": {"label": "oncall"}}})
        assert _names(result) == ["Cyd", "Dee", "EVE"]

    def test_every_includes_rows_without_related(self, seeded):
        result = seeded.member.find_many(where={"badges": {"every": {"label": "oncall"}}})
        assert _names(result) == ["Bob", "Cyd", "Dee"]

    def test_some_and_every_combine(self, seeded):
        result = seeded.member.find_many(
            where={"badges": {"some": {}, "every": {"label": {"not": "mentor"}}}}
        )
        assert _names(result) == ["Bob", "EVE"]

    def test_teams_without_members(self, seeded):
        result = seeded.team.find_many(where={"members": {"none": {}}})
        assert _names(result) == ["Idle"]

    def test_nested_relation_filter(self, seeded):
        result = seeded.member.find_many(
            where={"team": {"is": {"projects": {"some": {"budget": {"gt": 500}}}}}}
        )
        assert _names(result) == ["Ann", "Bob"]

    def test_is_rejected_on_to_many(self, seeded):
        with pytest.raises(QueryValidationError):
            seeded.member.find_many(where={"badges": {"is": {"label": "oncall"}}})


# ============================================================================
# to-one
# ============================================================================


class TestToOne:
    def test_is(self, seeded):
        result = seeded.member.find_many(where={"team": {"is": {"name": "Edge"}}})
        assert _names(result) == ["Cyd", "EVE"]

    def test_bare_where_is_shorthand_for_is(self, seeded):
        result = seeded.member.find_many(where={"team": {"city": "Oslo"}})
        assert _names(result) == ["Ann", "Bob"]

    def test_is_none(self, seeded):
        result = seeded.member.find_many(where={"team": {"is": None}})
        assert _names(result) == ["Dee"]

    def test_bare_none(self, seeded):
        assert _names(seeded.member.find_many(where={"account": None})) == ["Bob", "Dee", "EVE"]

    def test_is_not_none(self, seeded):
        result = seeded.member.find_many(where={"account": {"is_not": None}})
        assert _names(result) == ["Ann", "Cyd"]

    def test_is_not_where_includes_unrelated(self, seeded):
        """is_not with a where holds when there is no related row at all."""
        result = seeded.member.find_many(where={"team": {"is_not": {"name": "Core"}}})
        assert _names(result) == ["Cyd", "Dee", "EVE"]

    def test_relation_filter_on_null_related_column(self, seeded):
        """Edge has no city: its members never match city conditions either way."""
        positive = seeded.member.find_many(where={"team": {"is": {"city": {"not": "Oslo"}}}})
        assert _names(positive) == []

    def test_back_side_to_one(self, seeded):
        result = seeded.member.find_many(where={"account": {"is": {"handle": {"starts_with": "c"}}}})
        assert _names(result) == ["Cyd"]

    def test_some_rejected_on_to_one(self, seeded):
        with pytest.raises(QueryValidationError) as exc:
            seeded.member.find_many(where={"team": {"some": {"name": "Core"}}})
        assert "to-one" in str(exc.value)
