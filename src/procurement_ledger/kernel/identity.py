"""
Acting user, as supplied by the host application

The ledger does not authenticate anyone. Callers pass in who is acting and
in which role; the engine only uses it for audit fields and for the two
authority checks (self-approval and over-budget override).
"""

from pydantic import BaseModel, Field, field_validator


class Actor(BaseModel):
    """The user performing an operation"""

    actor_id: str = Field(..., min_length=1)
    display_name: str = Field(default="")
    role: str = Field(default="USER")

    model_config = {"frozen": True}

    @field_validator("role")
    @classmethod
    def _normalize_role(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def label(self) -> str:
        return self.display_name or self.actor_id


SYSTEM_ACTOR = Actor(actor_id="system", display_name="System", role="SYSTEM")
