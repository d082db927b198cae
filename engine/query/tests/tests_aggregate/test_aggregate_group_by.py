"""
FleetQL Query Kernel -- Group-By Tests

Grouping by one or more fields, aggregates per group, having filters over
by-values and aggregates, ordering by by-fields and aggregates, take/skip.

Validation happens before anything is read:
  - every field in having must be in by
  - every plain field in order_by must be in by
  - take/skip need order_by
  - by must be a non-empty list of non-Json scalar fields
"""

from decimal import Decimal

import pytest

from engine.query.errors import QueryValidationError

# ============================================================================
# Grouping
# ============================================================================


class TestGrouping:
    def test_group_by_single_field(self, seeded):
        result = seeded.member.group_by(by=["role"], _count={"_all": True})
        assert result == [
            {"role": "LEAD", "_count": {"_all": 1}},
            {"role": "DEV", "_count": {"_all": 3}},
            {"role": "QA", "_count": {"_all": 1}},
        ]

    def test_null_is_its_own_group(self, seeded):
        result = seeded.member.group_by(by=["team_id"], _count=True)
        assert result == [
            {"team_id": 1, "_count": 2},
            {"team_id": 2, "_count": 2},
            {"team_id": None, "_count": 1},
        ]

    def test_group_by_multiple_fields(self, seeded):
        result = seeded.member.group_by(by=["role", "age"], where={"role": "DEV"}, _count=True)
        assert result == [
            {"role": "DEV", "age": None, "_count": 1},
            {"role": "DEV", "age": 41, "_count": 1},
            {"role": "DEV", "age": 28, "_count": 1},
        ]

    def test_aggregates_per_group(self, seeded):
        result = seeded.member.group_by(
            by=["team_id"],
            where={"team_id": {"not": None}},
            _sum={"salary": True},
            _avg={"score": True},
        )
        assert result[0] == {
            "team_id": 1,
            "_sum": {"salary": Decimal("9300.50")},
            "_avg": {"score": pytest.approx(8.25)},
        }
        assert result[1]["_avg"] == {"score": pytest.approx(6.0)}

    def test_empty_input_yields_no_groups(self, seeded):
        assert seeded.member.group_by(by=["role"], where={"name": "Nobody"}, _count=True) == []


# ============================================================================
# having
# ============================================================================


class TestHaving:
    def test_having_on_aggregate(self, seeded):
        result = seeded.member.group_by(by=["role"], having={"role": {"_count": {"gt": 1}}}, _count=True)
        assert result == [{"role": "DEV", "_count": 3}]

    def test_having_on_by_value(self, seeded):
        result = seeded.member.group_by(by=["role"], having={"role": {"in": ["LEAD", "QA"]}}, _count=True)
        assert [g["role"] for g in result] == ["LEAD", "QA"]

    def test_having_avg(self, seeded):
        result = seeded.member.group_by(
            by=["team_id", "age"],
            having={"age": {"_avg": {"gte": 30}}},
            _count=True,
        )
        assert [g["age"] for g in result] == [34, 41]

    def test_having_combinators(self, seeded):
        result = seeded.member.group_by(
            by=["role"],
            having={"OR": [{"role": "QA"}, {"role": {"_count": {"gte": 3}}}]},
            _count=True,
        )
        assert [g["role"] for g in result] == ["DEV", "QA"]

    def test_having_not(self, seeded):
        result = seeded.member.group_by(by=["role"], having={"NOT": {"role": "DEV"}}, _count=True)
        assert [g["role"] for g in result] == ["LEAD", "QA"]

    def test_having_field_outside_by_rejected(self, seeded):
        with pytest.raises(QueryValidationError) as exc:
            seeded.member.group_by(by=["role"], having={"age": {"_avg": {"gt": 30}}}, _count=True)
        assert 'Field "age" used in "having" needs to be provided in "by"' in str(exc.value)

    def test_nested_having_field_outside_by_rejected(self, seeded):
        with pytest.raises(QueryValidationError):
            seeded.member.group_by(by=["role"], having={"AND": [{"role": "DEV"}, {"age": 28}]})

    def test_rejected_before_reading(self, client):
        """Validation fails on an empty store too: nothing needs to be read."""
        with pytest.raises(QueryValidationError):
            client.member.group_by(by=["role"], having={"name": "Ann"})


# ============================================================================
# Ordering and paging
# ============================================================================


class TestGroupOrdering:
    def test_order_by_by_field(self, seeded):
        """Enum values order by declaration (LEAD, DEV, QA), not alphabetically."""
        result = seeded.member.group_by(by=["role"], order_by={"role": "asc"}, _count=True)
        assert [g["role"] for g in result] == ["LEAD", "DEV", "QA"]

    def test_order_by_enum_desc(self, seeded):
        result = seeded.member.group_by(by=["role"], order_by={"role": "desc"})
        assert [g["role"] for g in result] == ["QA", "DEV", "LEAD"]

    def test_order_by_min_of_enum(self, seeded):
        result = seeded.member.group_by(by=["team_id"], order_by={"_min": {"role": "asc"}}, _min={"role": True})
        assert [(g["team_id"], g["_min"]["role"]) for g in result] == [(1, "LEAD"), (2, "DEV"), (None, "DEV")]

    def test_order_by_aggregate(self, seeded):
        result = seeded.member.group_by(
            by=["role"],
            order_by=[{"_count": {"role": "desc"}}, {"role": "asc"}],
            _count=True,
        )
        assert [g["role"] for g in result] == ["DEV", "LEAD", "QA"]

    def test_order_by_avg_nulls(self, seeded):
        result = seeded.member.group_by(by=["age"], order_by={"_avg": {"score": "asc"}}, _avg={"score": True})
        # the 28 group averages EVE only (Cyd has no score); null age group is Bob
        assert [g["age"] for g in result] == [28, None, 41, 34]

    def test_take_and_skip(self, seeded):
        result = seeded.member.group_by(by=["role"], order_by={"role": "asc"}, skip=1, take=1)
        assert result == [{"role": "DEV"}]

    def test_negative_take_pages_from_the_end(self, seeded):
        result = seeded.member.group_by(by=["role"], order_by={"role": "asc"}, take=-1, _count=True)
        assert result == [{"role": "QA", "_count": 1}]

    def test_negative_take_keeps_order(self, seeded):
        result = seeded.member.group_by(by=["role"], order_by={"role": "asc"}, take=-2)
        assert [g["role"] for g in result] == ["DEV", "QA"]

    def test_negative_take_with_skip(self, seeded):
        result = seeded.member.group_by(by=["role"], order_by={"role": "asc"}, skip=1, take=-1)
        assert result == [{"role": "DEV"}]

    def test_negative_take_skipping_everything(self, seeded):
        assert seeded.member.group_by(by=["role"], order_by={"role": "asc"}, skip=3, take=-1) == []

    def test_boolean_take_rejected(self, seeded):
        with pytest.raises(QueryValidationError):
            seeded.member.group_by(by=["role"], order_by={"role": "asc"}, take=True)

    def test_order_by_field_outside_by_rejected(self, seeded):
        with pytest.raises(QueryValidationError) as exc:
            seeded.member.group_by(by=["role"], order_by={"age": "asc"})
        assert 'Field "age" in "order_by" needs to be provided in "by"' in str(exc.value)

    def test_take_without_order_by_rejected(self, seeded):
        with pytest.raises(QueryValidationError):
            seeded.member.group_by(by=["role"], take=1)

    def test_empty_by_rejected(self, seeded):
        with pytest.raises(QueryValidationError):
            seeded.member.group_by(by=[])

    def test_by_json_rejected(self, seeded):
        with pytest.raises(QueryValidationError):
            seeded.member.group_by(by=["tags"])

    def test_by_unknown_field_rejected(self, seeded):
        with pytest.raises(QueryValidationError):
            seeded.member.group_by(by=["nickname"])
