import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from fastapi.security import HTTPAuthorizationCredentials

from app.errors import NotFound, Unauthorized
from app.models.user import LoginRequest, RefreshRequest, RegisterRequest, UserResponse
from app.services import auth_service
from app.services.audit_service import AuditContext, get_audit

logger = logging.getLogger("futmanager.auth")
router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, audit: AuditContext = Depends(get_audit)):
    """Create an account and its role profile."""
    user = await auth_service.register_user(
        body.email, body.password, body.role, body.full_name,
    )
    await audit.record(
        "REGISTER", "users", user["id"], {"email": user["email"], "role": user["role"]},
        user_id=user["id"],
    )
    return {
        "message": "User registered successfully",
        "user": UserResponse(**user).model_dump(),
    }


@router.post("/login")
async def login(body: LoginRequest, audit: AuditContext = Depends(get_audit)):
    """Login with email and password."""
    try:
        user, access, refresh = await auth_service.authenticate(body.email, body.password)
    except (Unauthorized, NotFound):
        await audit.record("LOGIN_FAILED", "users", detail={"email": body.email.lower()})
        raise

    await audit.record("LOGIN_SUCCESS", "users", user["id"], user_id=user["id"])
    logger.info("User logged in: %s", user["id"])
    return {
        "message": "Login successful",
        "access_token": access,
        "refresh_token": refresh,
        "user": UserResponse(**user).model_dump(),
    }


@router.post("/logout")
async def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_service.bearer_scheme),
    audit: AuditContext = Depends(get_audit),
):
    """Logout never fails; without a usable token there is nothing to revoke."""
    if credentials is None:
        return {"message": "Already logged out"}

    user_id = await auth_service.logout(credentials.credentials)
    if user_id:
        await audit.record("LOGOUT", "users", user_id, user_id=user_id)
        logger.info("User logged out: %s", user_id)
    return {"message": "Logged out successfully"}


@router.post("/refresh")
async def refresh(
    body: Optional[RefreshRequest] = None,
    audit: AuditContext = Depends(get_audit),
):
    """Exchange a refresh token for a new token pair (rotation)."""
    user_id, access, new_refresh = await auth_service.refresh_session(
        body.refresh_token if body else None,
    )
    await audit.record("TOKEN_REFRESH", "users", user_id, user_id=user_id)
    return {"access_token": access, "refresh_token": new_refresh}
