"""Admin-only audit log viewer."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.models.principal import Principal
from app.services import audit_query_service
from app.services.auth_service import requires

router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.get("")
async def list_audit_logs(
    action: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    user_id: Optional[str] = Query(None),
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: Principal = Depends(requires("audit", "list")),
):
    """List audit logs with filtering and pagination (admin only)."""
    page = await audit_query_service.list_entries(
        action=action,
        resource_type=resource_type,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    page["message"] = "Audit logs retrieved successfully"
    return page


@router.get("/stats")
async def audit_stats(admin: Principal = Depends(requires("audit", "get"))):
    stats = await audit_query_service.stats()
    return {"message": "Audit statistics retrieved successfully", "stats": stats}


@router.get("/user/{user_id}")
async def list_user_audit_logs(
    user_id: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: Principal = Depends(requires("audit", "list")),
):
    page = await audit_query_service.list_user_entries(user_id, limit=limit, offset=offset)
    page["message"] = "User audit logs retrieved successfully"
    return page
