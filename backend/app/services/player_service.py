"""
backend/app/services/player_service.py

Purpose:
    Player resource service. Players belong to a team; a jersey number is
    unique within its team (partial unique index on team_id + jersey_number,
    with a pre-check for a readable error).

Dependencies:
    - app.database
    - app.services.access_policy
"""

import logging
from typing import Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import app.database as _db
from app.errors import NotFound, ValidationError
from app.models.player import PlayerCreate, PlayerUpdate
from app.models.principal import Principal
from app.services import access_policy
from app.utils import serialize_doc, to_object_id, utcnow

logger = logging.getLogger("futmanager.players")

JERSEY_TAKEN = "Jersey number already taken in this team"


async def _team_summaries(team_ids: list) -> dict[str, dict]:
    if not team_ids:
        return {}
    teams = await _db.db.teams.find(
        {"_id": {"$in": list(set(team_ids))}},
        {"name": 1, "verified": 1, "owner_id": 1},
    ).to_list(length=None)
    return {
        str(t["_id"]): {
            "id": str(t["_id"]),
            "name": t.get("name"),
            "verified": bool(t.get("verified")),
            "owner_id": t.get("owner_id"),
        }
        for t in teams
    }


async def _with_team(docs: list[dict]) -> list[dict]:
    teams = await _team_summaries([d["team_id"] for d in docs if d.get("team_id")])
    out = []
    for doc in docs:
        player = serialize_doc(doc)
        player["team"] = teams.get(str(doc.get("team_id")))
        out.append(player)
    return out


async def _fetch_in_scope(principal: Principal, player_id: str) -> dict:
    oid = to_object_id(player_id)
    scope = await access_policy.load_scope(principal, "players")
    if oid is None or scope is None:
        raise NotFound("Player not found")
    doc = await _db.db.players.find_one(access_policy.with_scope(scope, {"_id": oid}))
    if not doc:
        raise NotFound("Player not found")
    return doc


async def _require_team(team_id: ObjectId) -> None:
    team = await _db.db.teams.find_one({"_id": team_id}, {"_id": 1})
    if not team:
        raise ValidationError("Team not found")


async def _require_free_jersey(
    team_id: ObjectId,
    jersey_number: int,
    exclude_id: Optional[ObjectId] = None,
) -> None:
    query: dict = {"team_id": team_id, "jersey_number": jersey_number}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    if await _db.db.players.find_one(query, {"_id": 1}):
        raise ValidationError(JERSEY_TAKEN)


async def list_players(principal: Principal) -> list[dict]:
    scope = await access_policy.load_scope(principal, "players")
    if scope is None:
        return []
    docs = await _db.db.players.find(scope).sort("created_at", -1).to_list(length=None)
    return await _with_team(docs)


async def get_player(principal: Principal, player_id: str) -> dict:
    doc = await _fetch_in_scope(principal, player_id)
    return (await _with_team([doc]))[0]


async def create_player(principal: Principal, data: PlayerCreate) -> dict:
    team_id = to_object_id(data.team_id)
    await _require_team(team_id)
    if data.jersey_number is not None:
        await _require_free_jersey(team_id, data.jersey_number)

    now = utcnow()
    doc = {
        "name": data.name,
        "surname": data.surname,
        "team_id": team_id,
        "position": data.position,
        "verified": False,
        "created_at": now,
        "updated_at": now,
    }
    # Absent numbers are omitted so the partial unique index ignores them.
    if data.jersey_number is not None:
        doc["jersey_number"] = data.jersey_number

    try:
        result = await _db.db.players.insert_one(doc)
    except DuplicateKeyError:
        raise ValidationError(JERSEY_TAKEN)

    doc["_id"] = result.inserted_id
    logger.info("Player created: %s in team %s by %s", result.inserted_id, team_id, principal.id)
    return (await _with_team([doc]))[0]


async def update_player(
    principal: Principal, player_id: str, data: PlayerUpdate,
) -> tuple[dict, dict]:
    """Apply a partial update. Returns (updated player, fields actually applied)."""
    existing = await _fetch_in_scope(principal, player_id)
    changes = access_policy.strip_privileged_fields(principal, data.model_dump(exclude_unset=True))
    if not changes:
        return (await _with_team([existing]))[0], changes

    if "team_id" in changes:
        changes["team_id"] = to_object_id(changes["team_id"])
        if changes["team_id"] != existing.get("team_id"):
            await _require_team(changes["team_id"])

    if "team_id" in changes or "jersey_number" in changes:
        team_id = changes.get("team_id", existing.get("team_id"))
        jersey = changes.get("jersey_number", existing.get("jersey_number"))
        if jersey is not None:
            await _require_free_jersey(team_id, jersey, exclude_id=existing["_id"])

    try:
        updated = await _db.db.players.find_one_and_update(
            {"_id": existing["_id"]},
            {"$set": {**changes, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise ValidationError(JERSEY_TAKEN)
    if not updated:
        raise NotFound("Player not found")
    return (await _with_team([updated]))[0], changes


async def delete_player(principal: Principal, player_id: str) -> dict:
    """Delete a player and the sanctions issued against them."""
    existing = await _fetch_in_scope(principal, player_id)
    sanctions = await _db.db.sanctions.delete_many({"player_id": existing["_id"]})
    await _db.db.players.delete_one({"_id": existing["_id"]})
    logger.info(
        "Player deleted: %s (%d sanctions removed)", existing["_id"], sanctions.deleted_count,
    )
    return serialize_doc(existing)


async def verify_player(principal: Principal, player_id: str) -> dict:
    """Mark a player verified. Idempotent."""
    oid = to_object_id(player_id)
    if oid is None:
        raise NotFound("Player not found")
    updated = await _db.db.players.find_one_and_update(
        {"_id": oid},
        {"$set": {"verified": True, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFound("Player not found")
    logger.info("Player verified: %s by %s", oid, principal.id)
    return (await _with_team([updated]))[0]
