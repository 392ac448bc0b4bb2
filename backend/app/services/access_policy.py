"""
backend/app/services/access_policy.py

Purpose:
    Role-based authorization policy. Two independent decision tables:

    1. Route-level role gate: ``can_access(role, resource, action)`` answers
       "may this role call this endpoint at all".
    2. Row-level scope filter: ``scope_filter(principal, resource, ...)``
       returns the Mongo predicate narrowing which rows the role may see or
       mutate, or ``None`` when the scope is empty.

    Ownership checks for mutations (team owner edits own team, vocal edits own
    sanction) and the privileged-field stripping of update payloads live here
    as well, so the whole policy can be read and tested without persistence.

Dependencies:
    - app.database (only for load_scope)
    - app.errors
    - app.models.principal
"""

from __future__ import annotations

from typing import Any, Iterable, Literal, Optional

import app.database as _db
from app.errors import Forbidden
from app.models.principal import ROLES, Principal

Resource = Literal["teams", "players", "sanctions", "audit"]
Action = Literal["list", "get", "create", "update", "delete", "verify"]

ADMIN = "admin"
TEAM_OWNER = "team_owner"
VOCAL = "vocal"

_ANY = frozenset(ROLES)

# (resource, action) -> roles allowed past the gate. Missing entries deny.
ROUTE_GATE: dict[tuple[str, str], frozenset[str]] = {
    ("teams", "list"): _ANY,
    ("teams", "get"): _ANY,
    ("teams", "create"): frozenset({TEAM_OWNER}),
    ("teams", "update"): frozenset({TEAM_OWNER, ADMIN}),  # owner-of-row checked per row
    ("teams", "delete"): frozenset({ADMIN}),
    ("teams", "verify"): frozenset({ADMIN}),
    ("players", "list"): _ANY,
    ("players", "get"): _ANY,
    ("players", "create"): frozenset({ADMIN}),
    ("players", "update"): frozenset({ADMIN}),
    ("players", "delete"): frozenset({ADMIN}),
    ("players", "verify"): frozenset({ADMIN}),
    ("sanctions", "list"): _ANY,
    ("sanctions", "get"): _ANY,
    ("sanctions", "create"): frozenset({VOCAL, ADMIN}),
    ("sanctions", "update"): frozenset({VOCAL, ADMIN}),  # creator-if-vocal checked per row
    ("sanctions", "delete"): frozenset({VOCAL, ADMIN}),  # creator-if-vocal checked per row
    ("audit", "list"): frozenset({ADMIN}),
    ("audit", "get"): frozenset({ADMIN}),
}

# Fields only an admin may set through a partial update.
PRIVILEGED_FIELDS = frozenset({"verified"})


def can_access(role: str, resource: str, action: str) -> bool:
    return role in ROUTE_GATE.get((resource, action), frozenset())


def require_access(principal: Principal, resource: str, action: str) -> Principal:
    if not can_access(principal.role, resource, action):
        raise Forbidden("Forbidden: Insufficient permissions")
    return principal


def scope_filter(
    principal: Principal,
    resource: str,
    owned_team_ids: Iterable[Any] = (),
    owned_player_ids: Iterable[Any] = (),
    verified_team_ids: Iterable[Any] = (),
) -> Optional[dict]:
    """Return the Mongo filter for rows ``principal`` may read, or None for an empty scope.

    ``owned_team_ids`` / ``owned_player_ids`` are only consulted for team
    owners: the ids of the teams they own and of the players on those teams.
    ``verified_team_ids`` is only consulted for a vocal's player scope: a
    verified player is visible only while its team is verified too.
    """
    if principal.is_admin:
        return {}

    if principal.role == VOCAL:
        if resource == "teams":
            return {"verified": True}
        if resource == "players":
            team_ids = list(verified_team_ids)
            if not team_ids:
                return None
            return {"verified": True, "team_id": {"$in": team_ids}}
        if resource == "sanctions":
            return {}
        return None

    if principal.role == TEAM_OWNER:
        team_ids = list(owned_team_ids)
        player_ids = list(owned_player_ids)
        if resource == "teams":
            return {"owner_id": principal.id}
        if not team_ids:
            return None
        if resource == "players":
            return {"team_id": {"$in": team_ids}}
        if resource == "sanctions":
            clauses: list[dict] = [{"team_id": {"$in": team_ids}}]
            if player_ids:
                clauses.append({"player_id": {"$in": player_ids}})
            return {"$or": clauses} if len(clauses) > 1 else clauses[0]
        return None

    return None


async def owned_team_ids(principal: Principal) -> list:
    docs = await _db.db.teams.find({"owner_id": principal.id}, {"_id": 1}).to_list(length=None)
    return [doc["_id"] for doc in docs]


async def verified_team_ids() -> list:
    docs = await _db.db.teams.find({"verified": True}, {"_id": 1}).to_list(length=None)
    return [doc["_id"] for doc in docs]


async def load_scope(principal: Principal, resource: str) -> Optional[dict]:
    """Resolve the team/player ids a scope depends on from the store, then apply ``scope_filter``."""
    if principal.role == VOCAL and resource == "players":
        return scope_filter(principal, resource, verified_team_ids=await verified_team_ids())
    if principal.role != TEAM_OWNER or resource == "teams":
        return scope_filter(principal, resource)

    team_ids = await owned_team_ids(principal)
    player_ids: list = []
    if team_ids and resource == "sanctions":
        docs = await _db.db.players.find(
            {"team_id": {"$in": team_ids}}, {"_id": 1},
        ).to_list(length=None)
        player_ids = [doc["_id"] for doc in docs]
    return scope_filter(principal, resource, team_ids, player_ids)


def with_scope(scope: dict, extra: dict) -> dict:
    """AND a scope predicate with an additional filter."""
    if not scope:
        return dict(extra)
    if not extra:
        return dict(scope)
    return {"$and": [scope, extra]}


def is_row_owner(principal: Principal, resource: str, row: dict) -> bool:
    """Whether ``principal`` may mutate ``row`` beyond the route gate."""
    if principal.is_admin:
        return True
    if resource == "teams":
        return principal.role == TEAM_OWNER and str(row.get("owner_id")) == principal.id
    if resource == "sanctions":
        return principal.role == VOCAL and str(row.get("created_by")) == principal.id
    return False


def require_row_owner(principal: Principal, resource: str, row: dict, message: str) -> None:
    if not is_row_owner(principal, resource, row):
        raise Forbidden(message)


def strip_privileged_fields(principal: Principal, payload: dict) -> dict:
    """Drop fields the caller may not set, without failing the update.

    ``verified`` is admin-only and one-way: a non-admin value is dropped and
    so is ``verified: false`` from an admin, since verification never reverts.
    """
    cleaned = dict(payload)
    for field in PRIVILEGED_FIELDS:
        if field not in cleaned:
            continue
        if not principal.is_admin or cleaned[field] is not True:
            cleaned.pop(field)
    return cleaned
