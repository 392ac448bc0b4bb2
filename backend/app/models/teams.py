"""
backend/app/models/teams.py

Purpose:
    Team request bodies. A team belongs to exactly one owner and starts
    unverified until an admin approves it.

Dependencies:
    - pydantic
    - app.models.common
"""

from typing import Optional

from pydantic import BaseModel, Field

from app.models.common import PartialUpdate


class TeamCreate(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    description: Optional[str] = None


class TeamUpdate(PartialUpdate):
    """Partial update; ``verified`` is silently dropped for non-admin callers."""
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    description: Optional[str] = None
    verified: Optional[bool] = None
