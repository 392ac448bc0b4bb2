from typing import Optional

from pydantic import BaseModel, Field

from app.models.common import PartialUpdate, PyObjectId


class PlayerCreate(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    surname: str = Field(min_length=2, max_length=50)
    team_id: PyObjectId
    position: Optional[str] = None
    jersey_number: Optional[int] = Field(default=None, ge=1, le=99)


class PlayerUpdate(PartialUpdate):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    surname: Optional[str] = Field(default=None, min_length=2, max_length=50)
    team_id: Optional[PyObjectId] = None
    position: Optional[str] = None
    jersey_number: Optional[int] = Field(default=None, ge=1, le=99)
    verified: Optional[bool] = None
