# File: app/schemas/auth.py

from typing import Literal
from pydantic import BaseModel, ConfigDict, Field
from app.schemas.issue import ACTOR_ID_MAX, NAME_MAX

Role = Literal["citizen", "admin"]

class ActorSession(BaseModel):
    """The authenticated caller, as vouched for by the identity provider.

    Passed explicitly into every lifecycle operation.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, max_length=ACTOR_ID_MAX)
    name: str = Field(min_length=1, max_length=NAME_MAX)
    role: Role = "citizen"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
