"""Team endpoints. The role gate runs as a dependency; scope and ownership in team_service."""

from fastapi import APIRouter, Depends, status

from app.models.principal import Principal
from app.models.teams import TeamCreate, TeamUpdate
from app.services import team_service
from app.services.audit_service import AuditContext, get_audit
from app.services.auth_service import requires
from app.utils import serialize_doc

router = APIRouter(prefix="/api/teams", tags=["teams"])


@router.get("")
async def list_teams(
    principal: Principal = Depends(requires("teams", "list")),
    audit: AuditContext = Depends(get_audit),
):
    teams = await team_service.list_teams(principal)
    await audit.record("VIEW_TEAMS", "teams", detail={"count": len(teams)})
    return {
        "teams": teams,
        "count": len(teams),
        "user_role": principal.role,
        "message": "Teams retrieved successfully",
    }


@router.get("/{team_id}")
async def get_team(
    team_id: str,
    principal: Principal = Depends(requires("teams", "get")),
    audit: AuditContext = Depends(get_audit),
):
    team = await team_service.get_team(principal, team_id)
    await audit.record("VIEW_TEAM_DETAIL", "teams", team_id)
    return {"message": "Team details retrieved successfully", "team": team}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_team(
    body: TeamCreate,
    principal: Principal = Depends(requires("teams", "create")),
    audit: AuditContext = Depends(get_audit),
):
    team = await team_service.create_team(principal, body)
    await audit.record(
        "CREATE_TEAM", "teams", team["id"],
        {"name": team["name"], "description": team["description"]},
    )
    return {
        "message": "Team created successfully. Awaiting admin verification.",
        "team": team,
    }


@router.put("/{team_id}")
async def update_team(
    team_id: str,
    body: TeamUpdate,
    principal: Principal = Depends(requires("teams", "update")),
    audit: AuditContext = Depends(get_audit),
):
    team, changes = await team_service.update_team(principal, team_id, body)
    await audit.record("UPDATE_TEAM", "teams", team_id, serialize_doc(changes))
    return {"message": "Team updated successfully", "team": team}


@router.delete("/{team_id}")
async def delete_team(
    team_id: str,
    principal: Principal = Depends(requires("teams", "delete")),
    audit: AuditContext = Depends(get_audit),
):
    team = await team_service.delete_team(principal, team_id)
    await audit.record("DELETE_TEAM", "teams", team_id, {"team_name": team.get("name")})
    return {"message": "Team deleted successfully"}


@router.patch("/{team_id}/verify")
async def verify_team(
    team_id: str,
    principal: Principal = Depends(requires("teams", "verify")),
    audit: AuditContext = Depends(get_audit),
):
    team = await team_service.verify_team(principal, team_id)
    await audit.record("VERIFY_TEAM", "teams", team_id)
    return {"message": "Team verified successfully", "team": team}
