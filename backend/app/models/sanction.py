from typing import Optional

from pydantic import BaseModel, Field, model_validator

from app.models.common import PartialUpdate, PyObjectId

MAX_SANCTION_AMOUNT = 999999.99


class SanctionCreate(BaseModel):
    description: str = Field(min_length=5, max_length=500)
    amount: float = Field(ge=0, le=MAX_SANCTION_AMOUNT)
    player_id: Optional[PyObjectId] = None
    team_id: Optional[PyObjectId] = None

    @model_validator(mode="after")
    def exactly_one_target(self):
        if self.player_id is None and self.team_id is None:
            raise ValueError("Either player_id or team_id must be provided")
        if self.player_id is not None and self.team_id is not None:
            raise ValueError("Cannot specify both player_id and team_id")
        return self

    @property
    def target_type(self) -> str:
        return "player" if self.player_id is not None else "team"


class SanctionUpdate(PartialUpdate):
    """Only the description and amount of a sanction can change; the target is fixed."""
    description: Optional[str] = Field(default=None, min_length=5, max_length=500)
    amount: Optional[float] = Field(default=None, ge=0, le=MAX_SANCTION_AMOUNT)
