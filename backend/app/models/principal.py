"""
backend/app/models/principal.py

Purpose:
    Roles and the per-request authenticated Principal.
"""

from typing import Literal

from pydantic import BaseModel

Role = Literal["admin", "team_owner", "vocal"]

ROLES: tuple[str, ...] = ("admin", "team_owner", "vocal")


class Principal(BaseModel):
    """Authenticated caller. Produced per request, never persisted by the API."""

    id: str
    email: str = ""
    role: Role

    model_config = {"frozen": True}

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
