from fastapi import APIRouter, Depends, status

from app.models.player import PlayerCreate, PlayerUpdate
from app.models.principal import Principal
from app.services import player_service
from app.services.audit_service import AuditContext, get_audit
from app.services.auth_service import requires
from app.utils import serialize_doc

router = APIRouter(prefix="/api/players", tags=["players"])


@router.get("")
async def list_players(
    principal: Principal = Depends(requires("players", "list")),
    audit: AuditContext = Depends(get_audit),
):
    players = await player_service.list_players(principal)
    await audit.record("VIEW_PLAYERS", "players", detail={"count": len(players)})
    return {
        "players": players,
        "count": len(players),
        "user_role": principal.role,
        "message": "Players retrieved successfully",
    }


@router.get("/{player_id}")
async def get_player(
    player_id: str,
    principal: Principal = Depends(requires("players", "get")),
    audit: AuditContext = Depends(get_audit),
):
    player = await player_service.get_player(principal, player_id)
    await audit.record("VIEW_PLAYER_DETAIL", "players", player_id)
    return {"message": "Player details retrieved successfully", "player": player}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_player(
    body: PlayerCreate,
    principal: Principal = Depends(requires("players", "create")),
    audit: AuditContext = Depends(get_audit),
):
    player = await player_service.create_player(principal, body)
    await audit.record(
        "CREATE_PLAYER", "players", player["id"],
        {
            "name": player["name"],
            "surname": player["surname"],
            "team_id": player["team_id"],
            "jersey_number": player.get("jersey_number"),
        },
    )
    return {
        "message": "Player created successfully. Awaiting verification.",
        "player": player,
    }


@router.put("/{player_id}")
async def update_player(
    player_id: str,
    body: PlayerUpdate,
    principal: Principal = Depends(requires("players", "update")),
    audit: AuditContext = Depends(get_audit),
):
    player, changes = await player_service.update_player(principal, player_id, body)
    await audit.record("UPDATE_PLAYER", "players", player_id, serialize_doc(changes))
    return {"message": "Player updated successfully", "player": player}


@router.delete("/{player_id}")
async def delete_player(
    player_id: str,
    principal: Principal = Depends(requires("players", "delete")),
    audit: AuditContext = Depends(get_audit),
):
    player = await player_service.delete_player(principal, player_id)
    await audit.record(
        "DELETE_PLAYER", "players", player_id,
        {"player_name": f"{player.get('name')} {player.get('surname')}"},
    )
    return {"message": "Player deleted successfully"}


@router.patch("/{player_id}/verify")
async def verify_player(
    player_id: str,
    principal: Principal = Depends(requires("players", "verify")),
    audit: AuditContext = Depends(get_audit),
):
    player = await player_service.verify_player(principal, player_id)
    await audit.record("VERIFY_PLAYER", "players", player_id)
    return {"message": "Player verified successfully", "player": player}
