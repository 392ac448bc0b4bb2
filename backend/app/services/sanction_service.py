"""
backend/app/services/sanction_service.py

Purpose:
    Sanction resource service. A sanction targets exactly one player or one
    team; the target must exist and be verified when the sanction is issued.
    Vocals may only change or remove sanctions they created.

Dependencies:
    - app.database
    - app.services.access_policy
"""

import logging

from pymongo import ReturnDocument

import app.database as _db
from app.errors import NotFound, ValidationError
from app.models.principal import Principal
from app.models.sanction import SanctionCreate, SanctionUpdate
from app.services import access_policy
from app.utils import serialize_doc, to_object_id, utcnow

logger = logging.getLogger("futmanager.sanctions")


async def _embed(docs: list[dict]) -> list[dict]:
    """Attach player, team and creator summaries to sanction rows."""
    player_ids = list({d["player_id"] for d in docs if d.get("player_id")})
    team_ids = list({d["team_id"] for d in docs if d.get("team_id")})
    creator_ids = list({
        oid for oid in (to_object_id(d.get("created_by")) for d in docs) if oid is not None
    })

    players: dict = {}
    if player_ids:
        rows = await _db.db.players.find(
            {"_id": {"$in": player_ids}}, {"name": 1, "surname": 1, "team_id": 1},
        ).to_list(length=None)
        players = {r["_id"]: serialize_doc(r) for r in rows}

    teams: dict = {}
    if team_ids:
        rows = await _db.db.teams.find(
            {"_id": {"$in": team_ids}}, {"name": 1},
        ).to_list(length=None)
        teams = {r["_id"]: serialize_doc(r) for r in rows}

    creators: dict = {}
    if creator_ids:
        rows = await _db.db.user_profiles.find(
            {"_id": {"$in": creator_ids}}, {"full_name": 1, "email": 1},
        ).to_list(length=None)
        creators = {
            str(r["_id"]): {"full_name": r.get("full_name") or "", "email": r.get("email") or ""}
            for r in rows
        }

    out = []
    for doc in docs:
        sanction = serialize_doc(doc)
        sanction["player"] = players.get(doc.get("player_id"))
        sanction["team"] = teams.get(doc.get("team_id"))
        sanction["created_by_user"] = creators.get(str(doc.get("created_by")))
        out.append(sanction)
    return out


async def _fetch_in_scope(principal: Principal, sanction_id: str) -> dict:
    oid = to_object_id(sanction_id)
    scope = await access_policy.load_scope(principal, "sanctions")
    if oid is None or scope is None:
        raise NotFound("Sanction not found")
    doc = await _db.db.sanctions.find_one(access_policy.with_scope(scope, {"_id": oid}))
    if not doc:
        raise NotFound("Sanction not found")
    return doc


async def list_sanctions(principal: Principal) -> list[dict]:
    scope = await access_policy.load_scope(principal, "sanctions")
    if scope is None:
        return []
    docs = await _db.db.sanctions.find(scope).sort("created_at", -1).to_list(length=None)
    return await _embed(docs)


async def get_sanction(principal: Principal, sanction_id: str) -> dict:
    doc = await _fetch_in_scope(principal, sanction_id)
    return (await _embed([doc]))[0]


async def list_team_sanctions(principal: Principal, team_id: str) -> list[dict]:
    """Sanctions against a team and against any of its players, newest first.

    Team owners may only ask about their own team.
    """
    oid = to_object_id(team_id)
    if oid is None:
        raise NotFound("Team not found or access denied")
    query: dict = {"_id": oid}
    if principal.role == access_policy.TEAM_OWNER:
        query["owner_id"] = principal.id
    team = await _db.db.teams.find_one(query, {"_id": 1})
    if not team:
        raise NotFound("Team not found or access denied")

    player_ids = await _db.db.players.distinct("_id", {"team_id": oid})
    filt: dict = {"team_id": oid}
    if player_ids:
        filt = {"$or": [{"team_id": oid}, {"player_id": {"$in": player_ids}}]}
    docs = await _db.db.sanctions.find(filt).sort("created_at", -1).to_list(length=None)
    return await _embed(docs)


async def _require_verified_target(data: SanctionCreate) -> None:
    if data.player_id is not None:
        player = await _db.db.players.find_one(
            {"_id": to_object_id(data.player_id)}, {"verified": 1},
        )
        if not player:
            raise ValidationError("Player not found")
        if not player.get("verified"):
            raise ValidationError("Cannot sanction unverified player")
    else:
        team = await _db.db.teams.find_one(
            {"_id": to_object_id(data.team_id)}, {"verified": 1},
        )
        if not team:
            raise ValidationError("Team not found")
        if not team.get("verified"):
            raise ValidationError("Cannot sanction unverified team")


async def create_sanction(principal: Principal, data: SanctionCreate) -> dict:
    await _require_verified_target(data)

    now = utcnow()
    doc = {
        "description": data.description,
        "amount": data.amount,
        "created_by": principal.id,
        "created_at": now,
        "updated_at": now,
    }
    if data.player_id is not None:
        doc["player_id"] = to_object_id(data.player_id)
    else:
        doc["team_id"] = to_object_id(data.team_id)

    result = await _db.db.sanctions.insert_one(doc)
    doc["_id"] = result.inserted_id
    logger.info(
        "Sanction created: %s against %s by %s", result.inserted_id, data.target_type, principal.id,
    )
    return (await _embed([doc]))[0]


async def update_sanction(
    principal: Principal, sanction_id: str, data: SanctionUpdate,
) -> tuple[dict, dict]:
    """Apply a partial update. Returns (updated sanction, fields actually applied)."""
    existing = await _fetch_in_scope(principal, sanction_id)
    access_policy.require_row_owner(
        principal, "sanctions", existing, "You can only update sanctions you created",
    )

    changes = access_policy.strip_privileged_fields(principal, data.model_dump(exclude_unset=True))
    if not changes:
        return (await _embed([existing]))[0], changes

    updated = await _db.db.sanctions.find_one_and_update(
        {"_id": existing["_id"]},
        {"$set": {**changes, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFound("Sanction not found")
    return (await _embed([updated]))[0], changes


async def delete_sanction(principal: Principal, sanction_id: str) -> dict:
    existing = await _fetch_in_scope(principal, sanction_id)
    access_policy.require_row_owner(
        principal, "sanctions", existing, "You can only delete sanctions you created",
    )
    await _db.db.sanctions.delete_one({"_id": existing["_id"]})
    logger.info("Sanction deleted: %s by %s", existing["_id"], principal.id)
    return serialize_doc(existing)
