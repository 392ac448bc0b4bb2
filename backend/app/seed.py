import logging

from app.utils import utcnow

from argon2 import PasswordHasher

import app.database as _db
from app.config import settings

logger = logging.getLogger("futmanager.seed")
ph = PasswordHasher()


async def seed_initial_user() -> None:
    """Ensure the configured admin exists, with an identity record and an admin profile.

    Idempotent: an existing account is promoted to admin and its password hash
    refreshed; a missing profile is recreated.
    """
    if not settings.SEED_ADMIN_EMAIL or not settings.SEED_ADMIN_PASSWORD:
        logger.debug("SEED_ADMIN_EMAIL/SEED_ADMIN_PASSWORD not set, skipping seed")
        return

    email = settings.SEED_ADMIN_EMAIL.strip().lower()
    if not email:
        logger.warning("Seed admin skipped: empty SEED_ADMIN_EMAIL")
        return

    now = utcnow()
    existing = await _db.db.auth_users.find_one({"email": email})
    if existing:
        user_oid = existing["_id"]
        await _db.db.auth_users.update_one(
            {"_id": user_oid},
            {"$set": {"hashed_password": ph.hash(settings.SEED_ADMIN_PASSWORD)}},
        )
        logger.info("Seed admin already exists: %s", user_oid)
    else:
        result = await _db.db.auth_users.insert_one({
            "email": email,
            "hashed_password": ph.hash(settings.SEED_ADMIN_PASSWORD),
            "created_at": now,
        })
        user_oid = result.inserted_id
        logger.info("Seed admin created: %s", user_oid)

    await _db.db.user_profiles.update_one(
        {"_id": user_oid},
        {
            "$set": {"role": "admin", "email": email},
            "$setOnInsert": {"full_name": settings.SEED_ADMIN_NAME, "created_at": now},
        },
        upsert=True,
    )
