"""
backend/tests/test_access_policy.py

Purpose:
    The route gate and the row scope filter are pure functions; test them
    without persistence.
"""

from __future__ import annotations

import pytest
from bson import ObjectId
from pydantic import ValidationError as PydanticValidationError

from app.errors import Forbidden
from app.models.player import PlayerUpdate
from app.models.sanction import SanctionUpdate
from app.models.teams import TeamUpdate
from app.services import access_policy


@pytest.mark.parametrize(
    "role,resource,action,allowed",
    [
        ("admin", "teams", "list", True),
        ("vocal", "teams", "get", True),
        ("team_owner", "teams", "create", True),
        ("admin", "teams", "create", False),
        ("vocal", "teams", "create", False),
        ("team_owner", "teams", "update", True),
        ("vocal", "teams", "update", False),
        ("team_owner", "teams", "delete", False),
        ("admin", "teams", "verify", True),
        ("team_owner", "teams", "verify", False),
        ("team_owner", "players", "create", False),
        ("vocal", "players", "update", False),
        ("admin", "players", "delete", True),
        ("team_owner", "players", "list", True),
        ("vocal", "sanctions", "create", True),
        ("team_owner", "sanctions", "create", False),
        ("team_owner", "sanctions", "delete", False),
        ("admin", "sanctions", "update", True),
        ("admin", "audit", "list", True),
        ("vocal", "audit", "list", False),
        ("admin", "sanctions", "verify", False),
    ],
)
def test_route_gate(role, resource, action, allowed):
    assert access_policy.can_access(role, resource, action) is allowed


def test_require_access_raises_forbidden(make_principal):
    owner = make_principal("team_owner")
    with pytest.raises(Forbidden) as exc:
        access_policy.require_access(owner, "players", "create")
    assert exc.value.message == "Forbidden: Insufficient permissions"
    assert access_policy.require_access(owner, "teams", "create") is owner


def test_scope_admin_is_unrestricted(make_principal):
    admin = make_principal("admin")
    for resource in ("teams", "players", "sanctions"):
        assert access_policy.scope_filter(admin, resource) == {}


def test_scope_vocal_sees_verified_teams_and_players_and_all_sanctions(make_principal):
    vocal = make_principal("vocal")
    team_id = ObjectId()
    assert access_policy.scope_filter(vocal, "teams") == {"verified": True}
    assert access_policy.scope_filter(vocal, "players", verified_team_ids=[team_id]) == {
        "verified": True,
        "team_id": {"$in": [team_id]},
    }
    assert access_policy.scope_filter(vocal, "sanctions") == {}


def test_scope_vocal_players_empty_without_verified_teams(make_principal):
    assert access_policy.scope_filter(make_principal("vocal"), "players") is None


def test_scope_team_owner_without_team_is_empty(make_principal):
    owner = make_principal("team_owner")
    assert access_policy.scope_filter(owner, "teams") == {"owner_id": owner.id}
    assert access_policy.scope_filter(owner, "players") is None
    assert access_policy.scope_filter(owner, "sanctions") is None


def test_scope_team_owner_with_team_and_players(make_principal):
    owner = make_principal("team_owner")
    team_id, player_id = ObjectId(), ObjectId()

    assert access_policy.scope_filter(owner, "players", [team_id]) == {"team_id": {"$in": [team_id]}}
    assert access_policy.scope_filter(owner, "sanctions", [team_id]) == {"team_id": {"$in": [team_id]}}
    assert access_policy.scope_filter(owner, "sanctions", [team_id], [player_id]) == {
        "$or": [{"team_id": {"$in": [team_id]}}, {"player_id": {"$in": [player_id]}}],
    }


def test_with_scope_combines_predicates():
    assert access_policy.with_scope({}, {"_id": 1}) == {"_id": 1}
    assert access_policy.with_scope({"verified": True}, {"_id": 1}) == {
        "$and": [{"verified": True}, {"_id": 1}],
    }


def test_row_ownership(make_principal):
    owner = make_principal("team_owner")
    other = make_principal("team_owner")
    vocal = make_principal("vocal")
    admin = make_principal("admin")
    team = {"owner_id": owner.id}
    sanction = {"created_by": vocal.id}

    assert access_policy.is_row_owner(owner, "teams", team)
    assert not access_policy.is_row_owner(other, "teams", team)
    assert access_policy.is_row_owner(admin, "teams", team)
    assert access_policy.is_row_owner(vocal, "sanctions", sanction)
    assert not access_policy.is_row_owner(make_principal("vocal"), "sanctions", sanction)
    assert access_policy.is_row_owner(admin, "sanctions", sanction)

    with pytest.raises(Forbidden):
        access_policy.require_row_owner(other, "teams", team, "You can only update your own team")


def test_strip_privileged_fields(make_principal):
    owner = make_principal("team_owner")
    admin = make_principal("admin")

    assert access_policy.strip_privileged_fields(owner, {"name": "FC Test", "verified": True}) == {
        "name": "FC Test",
    }
    assert access_policy.strip_privileged_fields(admin, {"verified": True}) == {"verified": True}
    # Verification never reverts, even for an admin.
    assert access_policy.strip_privileged_fields(admin, {"verified": False}) == {}


@pytest.mark.parametrize(
    "model,body",
    [
        (TeamUpdate, {"description": None}),
        (PlayerUpdate, {"jersey_number": None}),
        (SanctionUpdate, {"amount": None}),
    ],
)
def test_update_bodies_reject_explicit_nulls(model, body):
    with pytest.raises(PydanticValidationError) as exc:
        model(**body)
    assert "cannot be null" in str(exc.value)


def test_update_bodies_keep_omitted_fields_unset():
    assert PlayerUpdate(position="Keeper").model_dump(exclude_unset=True) == {"position": "Keeper"}
