"""
backend/app/services/auth_service.py

Purpose:
    Identity provider and Identity Resolver. Issues HS256 access/refresh JWTs
    for users in ``auth_users`` and resolves a bearer token to a Principal
    ``{id, email, role}`` using the role record in ``user_profiles``.

Dependencies:
    - PyJWT
    - argon2-cffi
    - app.database
    - app.services.access_policy
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from jwt.exceptions import InvalidTokenError as JWTError
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.config import settings
import app.database as _db
from app.errors import InternalError, NotFound, Unauthorized, ValidationError
from app.models.principal import Principal
from app.services import access_policy
from app.utils import to_object_id, utcnow

logger = logging.getLogger("futmanager.auth")
ph = PasswordHasher()
bearer_scheme = HTTPBearer(auto_error=False)

ALGORITHM = "HS256"


def decode_jwt(token: str) -> dict:
    """Decode a JWT, trying the current secret first, then the old one.

    This allows zero-downtime rotation of JWT_SECRET:
    1. Set JWT_SECRET to the new value and JWT_SECRET_OLD to the previous one.
    2. After REFRESH_TOKEN_EXPIRE_DAYS, all old tokens have expired.
    3. Remove JWT_SECRET_OLD from .env.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError:
        if settings.JWT_SECRET_OLD:
            return jwt.decode(token, settings.JWT_SECRET_OLD, algorithms=[ALGORITHM])
        raise


def hash_password(password: str) -> str:
    return ph.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return ph.verify(hashed, password)
    except (VerifyMismatchError, InvalidHashError):
        return False


def create_access_token(user_id: str) -> str:
    expire = utcnow() + timedelta(
        minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
    )
    payload = {
        "sub": user_id,
        "exp": expire,
        "type": "access",
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGORITHM)


async def create_refresh_token(user_id: str, family: Optional[str] = None) -> str:
    """Create a refresh token with rotation support.

    Each refresh token belongs to a 'family'. If a token is reused
    (replay attack), the entire family is invalidated.
    """
    expire = utcnow() + timedelta(
        days=settings.REFRESH_TOKEN_EXPIRE_DAYS
    )
    jti = secrets.token_hex(16)
    token_family = family or secrets.token_hex(8)

    payload = {
        "sub": user_id,
        "exp": expire,
        "type": "refresh",
        "jti": jti,
        "family": token_family,
    }
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGORITHM)

    await _db.db.refresh_tokens.insert_one({
        "jti": jti,
        "user_id": user_id,
        "family": token_family,
        "created_at": utcnow(),
        "expires_at": expire,
    })

    return token


async def rotate_refresh_token(old_jti: str, user_id: str, family: str) -> str:
    """Issue a new refresh token and invalidate the old one."""
    await _db.db.refresh_tokens.delete_one({"jti": old_jti})
    return await create_refresh_token(user_id, family=family)


async def invalidate_token_family(family: str) -> None:
    """Invalidate all tokens in a family (replay detection)."""
    result = await _db.db.refresh_tokens.delete_many({"family": family})
    logger.warning(
        "Token family invalidated (possible replay): %s (%d removed)",
        family, result.deleted_count,
    )


async def invalidate_user_tokens(user_id: str) -> None:
    """Invalidate all refresh tokens for a user (logout)."""
    await _db.db.refresh_tokens.delete_many({"user_id": user_id})


async def blocklist_access_token(jti: str, expires_at: datetime) -> None:
    """Add an access token JTI to the blocklist until it expires."""
    await _db.db.access_blocklist.update_one(
        {"jti": jti},
        {"$setOnInsert": {"jti": jti, "expires_at": expires_at}},
        upsert=True,
    )


async def is_refresh_token_valid(jti: str) -> bool:
    """Check if a refresh token JTI exists (not yet used/revoked)."""
    doc = await _db.db.refresh_tokens.find_one({"jti": jti}, {"_id": 1})
    return doc is not None


# --------- Identity Resolver --------- #

async def resolve_principal(token: Optional[str]) -> Principal:
    """Resolve a bearer token to a verified Principal.

    A token without a matching ``user_profiles`` row is an authentication
    failure (401), not a 404, so profile existence is never revealed.
    """
    if not token:
        raise Unauthorized("Unauthorized: Missing or invalid token")

    try:
        payload = decode_jwt(token)
    except JWTError:
        raise Unauthorized("Unauthorized: Invalid token")

    if payload.get("type") != "access":
        raise Unauthorized("Unauthorized: Invalid token")

    jti = payload.get("jti")
    if jti:
        blocked = await _db.db.access_blocklist.find_one({"jti": jti}, {"_id": 1})
        if blocked:
            raise Unauthorized("Unauthorized: Token revoked")

    user_oid = to_object_id(payload.get("sub"))
    if user_oid is None:
        raise Unauthorized("Unauthorized: Invalid token")

    try:
        profile = await _db.db.user_profiles.find_one({"_id": user_oid})
    except PyMongoError:
        logger.exception("Profile lookup failed for %s", user_oid)
        raise InternalError()
    if not profile:
        raise Unauthorized("Unauthorized: User profile not found")

    return Principal(
        id=str(user_oid),
        email=profile.get("email") or "",
        role=profile["role"],
    )


async def get_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Principal:
    """FastAPI dependency: ``Authorization: Bearer <token>`` -> Principal.

    The principal is also stored on ``request.state`` so the audit middleware
    can attribute the request.
    """
    token = credentials.credentials if credentials else None
    principal = await resolve_principal(token)
    request.state.principal = principal
    return principal


def requires(resource: str, action: str):
    """Dependency factory applying the route-level role gate."""

    async def _gate(principal: Principal = Depends(get_principal)) -> Principal:
        return access_policy.require_access(principal, resource, action)

    return _gate


# --------- Account operations --------- #

def _user_payload(user_id: str, email: str, profile: dict) -> dict:
    return {
        "id": user_id,
        "email": email,
        "role": profile["role"],
        "full_name": profile.get("full_name") or "",
    }


async def register_user(email: str, password: str, role: str, full_name: str) -> dict:
    """Create the identity record, then its role profile.

    If the profile cannot be written the identity record is removed again,
    so no user exists without a role.
    """
    email = email.lower()
    existing = await _db.db.auth_users.find_one({"email": email}, {"_id": 1})
    if existing:
        raise ValidationError("Registration failed")

    now = utcnow()
    try:
        result = await _db.db.auth_users.insert_one({
            "email": email,
            "hashed_password": hash_password(password),
            "created_at": now,
        })
    except DuplicateKeyError:
        raise ValidationError("Registration failed")

    user_oid = result.inserted_id
    profile = {
        "_id": user_oid,
        "email": email,
        "full_name": full_name,
        "role": role,
        "created_at": now,
    }
    try:
        await _db.db.user_profiles.insert_one(profile)
    except PyMongoError:
        logger.exception("Profile creation failed for %s; removing identity record", email)
        await _db.db.auth_users.delete_one({"_id": user_oid})
        raise ValidationError("Profile creation failed")

    logger.info("User registered: %s (%s)", user_oid, role)
    return _user_payload(str(user_oid), email, profile)


async def authenticate(email: str, password: str) -> tuple[dict, str, str]:
    """Check credentials and issue a token pair. Returns (user, access, refresh)."""
    email = email.lower()
    user = await _db.db.auth_users.find_one({"email": email})
    if not user or not verify_password(password, user.get("hashed_password") or ""):
        raise Unauthorized("Invalid credentials")

    profile = await _db.db.user_profiles.find_one({"_id": user["_id"]})
    if not profile:
        raise NotFound("User profile not found")

    user_id = str(user["_id"])
    access = create_access_token(user_id)
    refresh = await create_refresh_token(user_id)
    return _user_payload(user_id, user["email"], profile), access, refresh


async def refresh_session(refresh_token: Optional[str]) -> tuple[str, str, str]:
    """Rotate a refresh token. Returns (user_id, access, refresh)."""
    if not refresh_token:
        raise ValidationError("Refresh token required")

    try:
        payload = decode_jwt(refresh_token)
    except JWTError:
        raise Unauthorized("Invalid refresh token")

    if payload.get("type") != "refresh":
        raise Unauthorized("Invalid refresh token")

    jti = payload.get("jti")
    family = payload.get("family")
    user_id = payload.get("sub")

    # Check if token was already used (replay detection)
    if not jti or not await is_refresh_token_valid(jti):
        if family:
            await invalidate_token_family(family)
        raise Unauthorized("Invalid refresh token")

    new_access = create_access_token(user_id)
    new_refresh = await rotate_refresh_token(jti, user_id, family)
    return user_id, new_access, new_refresh


async def logout(access_token: Optional[str]) -> Optional[str]:
    """Revoke the presented access token and the user's refresh tokens.

    Never fails: an absent or undecodable token simply means there is nothing
    to revoke. Returns the user id when one could be determined.
    """
    if not access_token:
        return None
    try:
        payload = decode_jwt(access_token)
    except JWTError:
        return None

    user_id = payload.get("sub")
    jti = payload.get("jti")
    exp = payload.get("exp")
    try:
        if jti and exp:
            await blocklist_access_token(jti, datetime.fromtimestamp(exp, tz=utcnow().tzinfo))
        if user_id:
            await invalidate_user_tokens(user_id)
    except PyMongoError:
        logger.exception("Logout cleanup failed for user %s", user_id)
    return user_id
