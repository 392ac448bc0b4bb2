"""
backend/app/services/team_service.py

Purpose:
    Team resource service. Every read goes through the caller's row scope;
    mutations additionally check row ownership. One team per owner is enforced
    by a pre-check and by the unique ``teams.owner_id`` index.

Dependencies:
    - app.database
    - app.services.access_policy
    - app.utils
"""

import logging

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import app.database as _db
from app.errors import NotFound, ValidationError
from app.models.principal import Principal
from app.models.teams import TeamCreate, TeamUpdate
from app.services import access_policy
from app.utils import serialize_doc, to_object_id, utcnow

logger = logging.getLogger("futmanager.teams")

DUPLICATE_TEAM = "You already have a registered team"


async def _owner_summaries(owner_ids: list) -> dict[str, dict]:
    oids = [oid for oid in (to_object_id(o) for o in owner_ids) if oid is not None]
    if not oids:
        return {}
    profiles = await _db.db.user_profiles.find(
        {"_id": {"$in": oids}}, {"full_name": 1, "email": 1},
    ).to_list(length=None)
    return {
        str(p["_id"]): {"full_name": p.get("full_name") or "", "email": p.get("email") or ""}
        for p in profiles
    }


async def _player_counts(team_ids: list) -> dict[str, int]:
    if not team_ids:
        return {}
    rows = await _db.db.players.find(
        {"team_id": {"$in": team_ids}}, {"team_id": 1},
    ).to_list(length=None)
    counts: dict[str, int] = {}
    for row in rows:
        key = str(row["team_id"])
        counts[key] = counts.get(key, 0) + 1
    return counts


async def _fetch_in_scope(principal: Principal, team_id: str) -> dict:
    oid = to_object_id(team_id)
    scope = await access_policy.load_scope(principal, "teams")
    if oid is None or scope is None:
        raise NotFound("Team not found")
    doc = await _db.db.teams.find_one(access_policy.with_scope(scope, {"_id": oid}))
    if not doc:
        raise NotFound("Team not found")
    return doc


async def list_teams(principal: Principal) -> list[dict]:
    """Teams visible to the caller, newest first, with owner and player count."""
    scope = await access_policy.load_scope(principal, "teams")
    if scope is None:
        return []

    docs = await _db.db.teams.find(scope).sort("created_at", -1).to_list(length=None)
    owners = await _owner_summaries([d.get("owner_id") for d in docs])
    counts = await _player_counts([d["_id"] for d in docs])

    teams = []
    for doc in docs:
        team = serialize_doc(doc)
        team["owner"] = owners.get(str(doc.get("owner_id")))
        team["player_count"] = counts.get(str(doc["_id"]), 0)
        teams.append(team)
    return teams


async def get_team(principal: Principal, team_id: str) -> dict:
    """Team detail with its owner, players and team-level sanctions."""
    doc = await _fetch_in_scope(principal, team_id)

    owners = await _owner_summaries([doc.get("owner_id")])
    players = await _db.db.players.find({"team_id": doc["_id"]}).sort(
        "created_at", -1,
    ).to_list(length=None)
    sanctions = await _db.db.sanctions.find({"team_id": doc["_id"]}).sort(
        "created_at", -1,
    ).to_list(length=None)

    team = serialize_doc(doc)
    team["owner"] = owners.get(str(doc.get("owner_id")))
    team["players"] = [serialize_doc(p) for p in players]
    team["sanctions"] = [serialize_doc(s) for s in sanctions]
    return team


async def create_team(principal: Principal, data: TeamCreate) -> dict:
    existing = await _db.db.teams.find_one({"owner_id": principal.id}, {"_id": 1})
    if existing:
        raise ValidationError(DUPLICATE_TEAM)

    now = utcnow()
    doc = {
        "name": data.name,
        "description": data.description or "",
        "owner_id": principal.id,
        "verified": False,
        "created_at": now,
        "updated_at": now,
    }
    try:
        result = await _db.db.teams.insert_one(doc)
    except DuplicateKeyError:
        raise ValidationError(DUPLICATE_TEAM)

    doc["_id"] = result.inserted_id
    logger.info("Team created: %s by owner %s", result.inserted_id, principal.id)
    return serialize_doc(doc)


async def update_team(principal: Principal, team_id: str, data: TeamUpdate) -> tuple[dict, dict]:
    """Apply a partial update. Returns (updated team, fields actually applied)."""
    existing = await _fetch_in_scope(principal, team_id)
    access_policy.require_row_owner(
        principal, "teams", existing, "You can only update your own team",
    )

    changes = access_policy.strip_privileged_fields(principal, data.model_dump(exclude_unset=True))
    if not changes:
        return serialize_doc(existing), changes

    updated = await _db.db.teams.find_one_and_update(
        {"_id": existing["_id"]},
        {"$set": {**changes, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFound("Team not found")
    return serialize_doc(updated), changes


async def delete_team(principal: Principal, team_id: str) -> dict:
    """Delete a team together with its players and every sanction attached to either."""
    existing = await _fetch_in_scope(principal, team_id)
    oid = existing["_id"]

    player_ids = await _db.db.players.distinct("_id", {"team_id": oid})
    sanction_filter: dict = {"team_id": oid}
    if player_ids:
        sanction_filter = {"$or": [{"team_id": oid}, {"player_id": {"$in": player_ids}}]}

    sanctions = await _db.db.sanctions.delete_many(sanction_filter)
    players = await _db.db.players.delete_many({"team_id": oid})
    await _db.db.teams.delete_one({"_id": oid})

    logger.info(
        "Team deleted: %s (%d players, %d sanctions removed)",
        oid, players.deleted_count, sanctions.deleted_count,
    )
    return serialize_doc(existing)


async def verify_team(principal: Principal, team_id: str) -> dict:
    """Mark a team verified. Idempotent."""
    oid = to_object_id(team_id)
    if oid is None:
        raise NotFound("Team not found")
    updated = await _db.db.teams.find_one_and_update(
        {"_id": oid},
        {"$set": {"verified": True, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFound("Team not found")
    logger.info("Team verified: %s by %s", oid, principal.id)
    return serialize_doc(updated)
