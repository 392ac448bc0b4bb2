from fastapi import APIRouter, Depends, status

from app.models.principal import Principal
from app.models.sanction import SanctionCreate, SanctionUpdate
from app.services import sanction_service
from app.services.audit_service import AuditContext, get_audit
from app.services.auth_service import requires
from app.utils import serialize_doc

router = APIRouter(prefix="/api/sanctions", tags=["sanctions"])


@router.get("")
async def list_sanctions(
    principal: Principal = Depends(requires("sanctions", "list")),
    audit: AuditContext = Depends(get_audit),
):
    sanctions = await sanction_service.list_sanctions(principal)
    await audit.record("VIEW_SANCTIONS", "sanctions", detail={"count": len(sanctions)})
    return {
        "sanctions": sanctions,
        "count": len(sanctions),
        "user_role": principal.role,
        "message": "Sanctions retrieved successfully",
    }


# Declared before /{sanction_id} so "team" is not taken for an id.
@router.get("/team/{team_id}")
async def list_team_sanctions(
    team_id: str,
    principal: Principal = Depends(requires("sanctions", "list")),
    audit: AuditContext = Depends(get_audit),
):
    sanctions = await sanction_service.list_team_sanctions(principal, team_id)
    await audit.record(
        "VIEW_TEAM_SANCTIONS", "sanctions",
        detail={"team_id": team_id, "count": len(sanctions)},
    )
    return {
        "sanctions": sanctions,
        "count": len(sanctions),
        "user_role": principal.role,
        "message": "Team sanctions retrieved successfully",
    }


@router.get("/{sanction_id}")
async def get_sanction(
    sanction_id: str,
    principal: Principal = Depends(requires("sanctions", "get")),
    audit: AuditContext = Depends(get_audit),
):
    sanction = await sanction_service.get_sanction(principal, sanction_id)
    await audit.record("VIEW_SANCTION_DETAIL", "sanctions", sanction_id)
    return {"message": "Sanction details retrieved successfully", "sanction": sanction}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_sanction(
    body: SanctionCreate,
    principal: Principal = Depends(requires("sanctions", "create")),
    audit: AuditContext = Depends(get_audit),
):
    sanction = await sanction_service.create_sanction(principal, body)
    await audit.record(
        "CREATE_SANCTION", "sanctions", sanction["id"],
        {
            "description": body.description,
            "amount": body.amount,
            "target_type": body.target_type,
            "target_id": str(body.player_id or body.team_id),
        },
    )
    return {"message": "Sanction created successfully", "sanction": sanction}


@router.put("/{sanction_id}")
async def update_sanction(
    sanction_id: str,
    body: SanctionUpdate,
    principal: Principal = Depends(requires("sanctions", "update")),
    audit: AuditContext = Depends(get_audit),
):
    sanction, changes = await sanction_service.update_sanction(principal, sanction_id, body)
    await audit.record("UPDATE_SANCTION", "sanctions", sanction_id, serialize_doc(changes))
    return {"message": "Sanction updated successfully", "sanction": sanction}


@router.delete("/{sanction_id}")
async def delete_sanction(
    sanction_id: str,
    principal: Principal = Depends(requires("sanctions", "delete")),
    audit: AuditContext = Depends(get_audit),
):
    sanction = await sanction_service.delete_sanction(principal, sanction_id)
    await audit.record(
        "DELETE_SANCTION", "sanctions", sanction_id,
        {"description": sanction.get("description"), "amount": sanction.get("amount")},
    )
    return {"message": "Sanction deleted successfully"}
