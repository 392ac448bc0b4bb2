"""
backend/app/database.py

Purpose:
    MongoDB connection bootstrap and index management for identity, team,
    player, sanction and audit collections. The unique indexes created here
    are the authority for one-team-per-owner and jersey-number uniqueness;
    service-level pre-checks are only a fast path.

Dependencies:
    - motor.motor_asyncio
    - pymongo
    - app.config
"""

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, OperationFailure

from app.config import settings

client: AsyncIOMotorClient = None
db: AsyncIOMotorDatabase = None

logger = logging.getLogger("futmanager.database")


async def connect_db() -> None:
    global client, db
    client = AsyncIOMotorClient(
        settings.MONGO_URI,
        maxPoolSize=25,
        minPoolSize=5,
        tz_aware=True,
    )
    db = client[settings.MONGO_DB]
    await _ensure_indexes()


async def close_db() -> None:
    global client
    if client:
        client.close()


async def get_db() -> AsyncIOMotorDatabase:
    return db


async def _create_unique_or_fallback(collection, keys, *, name: str, **kwargs) -> None:
    """Create a unique index; on legacy duplicate data fall back to a plain lookup index."""
    try:
        await collection.create_index(keys, unique=True, name=name, **kwargs)
    except (DuplicateKeyError, OperationFailure) as exc:
        logger.warning(
            "Skipped unique index %s due to duplicate data: %s", name, exc,
        )
        await collection.create_index(keys, name=f"{name}_lookup")


async def _ensure_indexes() -> None:
    """Create indexes on startup. Idempotent."""

    # ---- Identity ----
    await db.auth_users.create_index("email", unique=True)
    await db.user_profiles.create_index("email")
    await db.user_profiles.create_index("role")

    # ---- Teams (one team per owner) ----
    await _create_unique_or_fallback(db.teams, "owner_id", name="teams_owner_unique")
    await db.teams.create_index([("verified", 1), ("created_at", -1)])
    await db.teams.create_index([("created_at", -1)])

    # ---- Players (jersey number unique per team when present) ----
    await _create_unique_or_fallback(
        db.players,
        [("team_id", 1), ("jersey_number", 1)],
        name="players_team_jersey_unique",
        partialFilterExpression={"jersey_number": {"$exists": True}},
    )
    await db.players.create_index([("team_id", 1), ("created_at", -1)])
    await db.players.create_index([("verified", 1), ("created_at", -1)])

    # ---- Sanctions ----
    await db.sanctions.create_index([("team_id", 1), ("created_at", -1)])
    await db.sanctions.create_index([("player_id", 1), ("created_at", -1)])
    await db.sanctions.create_index("created_by")
    await db.sanctions.create_index([("created_at", -1)])

    # ---- Audit Logs (insert-only) ----
    await db.audit_logs.create_index("created_at")
    await db.audit_logs.create_index([("user_id", 1), ("created_at", -1)])
    await db.audit_logs.create_index([("action", 1), ("created_at", -1)])
    await db.audit_logs.create_index([("resource_type", 1), ("created_at", -1)])

    # ---- Auth Tokens (TTL auto-delete) ----
    await db.refresh_tokens.create_index("jti", unique=True)
    await db.refresh_tokens.create_index("user_id")
    await db.refresh_tokens.create_index("family")
    await db.refresh_tokens.create_index("expires_at", expireAfterSeconds=0)

    await db.access_blocklist.create_index("jti", unique=True)
    await db.access_blocklist.create_index("expires_at", expireAfterSeconds=0)

    logger.info("Database indexes ensured for %s", settings.MONGO_DB)
