"""
Query kernel test configuration.

A small team/member schema that exercises every column type and every
relation shape: optional and required to-one, to-many, one-to-one, compound
unique keys, cascade / set_null / restrict deletes.
"""

import pytest

from engine.query.client import Client
from engine.query.types import RelationDef, Schema, model, scalar

# ============================================================================
# Schema
# ============================================================================


def _owner(name, target, fk, optional=False, on_delete=None):
    return RelationDef(
        name=name,
        target=target,
        fields=(fk,),
        references=("id",),
        owner=True,
        optional=optional,
        on_delete=on_delete,
    )


def _back(name, target, fk, to_many=True):
    return RelationDef(name=name, target=target, fields=("id",), references=(fk,), to_many=to_many)


def build_test_schema():
    team = model(
        "Team",
        [
            scalar("id", "Int", id=True, default="autoincrement"),
            scalar("name", "String", unique=True),
            scalar("city", "String", optional=True),
        ],
        [
            _back("members", "Member", "team_id"),
            _back("projects", "Project", "team_id"),
        ],
    )
    member = model(
        "Member",
        [
            scalar("id", "Int", id=True, default="autoincrement"),
            scalar("email", "String", unique=True),
            scalar("name", "String"),
            scalar("age", "Int", optional=True),
            scalar("score", "Float", optional=True),
            scalar("salary", "Decimal", optional=True),
            scalar("joined_at", "DateTime", optional=True),
            scalar("role", "Enum", values=("LEAD", "DEV", "QA"), default="DEV"),
            scalar("tags", "Json", optional=True),
            scalar("team_id", "Int", optional=True),
            scalar("created_at", "DateTime", default="now"),
            scalar("updated_at", "DateTime", updated_at=True),
        ],
        [
            _owner("team", "Team", "team_id", optional=True),
            _back("badges", "Badge", "member_id"),
            _back("account", "Account", "member_id", to_many=False),
        ],
    )
    badge = model(
        "Badge",
        [
            scalar("id", "Int", id=True, default="autoincrement"),
            scalar("member_id", "Int"),
            scalar("label", "String"),
        ],
        [_owner("member", "Member", "member_id", on_delete="cascade")],
        unique_together=[("member_id", "label")],
    )
    account = model(
        "Account",
        [
            scalar("id", "Int", id=True, default="autoincrement"),
            scalar("member_id", "Int", unique=True),
            scalar("handle", "String"),
        ],
        [_owner("member", "Member", "member_id")],
    )
    project = model(
        "Project",
        [
            scalar("id", "Int", id=True, default="autoincrement"),
            scalar("team_id", "Int"),
            scalar("title", "String"),
            scalar("budget", "Decimal", default="0"),
        ],
        [_owner("team", "Team", "team_id")],
    )
    return Schema([team, member, badge, account, project])


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def schema():
    return build_test_schema()


@pytest.fixture
def client(schema):
    """Empty client."""
    return Client(schema)


@pytest.fixture
def seeded(client):
    """
    Teams:    1 Core (Oslo), 2 Edge (no city), 3 Idle (Rome, nobody in it)
    Members:  1 Ann, 2 Bob, 3 Cyd, 4 Dee (no team), 5 EVE
    Badges:   Ann mentor + oncall, Bob oncall, EVE newcomer
    Accounts: Ann, Cyd
    Projects: Core Router + Cache, Edge Proxy
    """
    client.team.create_many(
        data=[
            {"name": "Core", "city": "Oslo"},
            {"name": "Edge"},
            {"name": "Idle", "city": "Rome"},
        ]
    )
    client.member.create_many(
        data=[
            {
                "email": "ann@x.io",
                "name": "Ann",
                "age": 34,
                "score": 9.5,
                "salary": "5200.50",
                "joined_at": "2023-01-10T09:00:00Z",
                "role": "LEAD",
                "team_id": 1,
            },
            {
                "email": "bob@x.io",
                "name": "Bob",
                "score": 7.0,
                "salary": "4100",
                "joined_at": "2023-03-01T09:00:00Z",
                "team_id": 1,
            },
            {"email": "cyd@x.io", "name": "Cyd", "age": 28, "role": "QA", "team_id": 2},
            {
                "email": "dee@x.io",
                "name": "Dee",
                "age": 41,
                "score": 8.25,
                "salary": "6100.25",
                "joined_at": "2022-11-20T09:00:00Z",
            },
            {
                "email": "eve@x.io",
                "name": "EVE",
                "age": 28,
                "score": 6.0,
                "salary": "3900",
                "joined_at": "2024-02-14T09:00:00Z",
                "team_id": 2,
            },
        ]
    )
    client.badge.create_many(
        data=[
            {"member_id": 1, "label": "mentor"},
            {"member_id": 1, "label": "oncall"},
            {"member_id": 2, "label": "oncall"},
            {"member_id": 5, "label": "newcomer"},
        ]
    )
    client.account.create_many(data=[{"member_id": 1, "handle": "ann"}, {"member_id": 3, "handle": "cyd"}])
    client.project.create_many(
        data=[
            {"team_id": 1, "title": "Router", "budget": "1000"},
            {"team_id": 1, "title": "Cache", "budget": "250.50"},
            {"team_id": 2, "title": "Proxy", "budget": "400"},
        ]
    )
    return client
