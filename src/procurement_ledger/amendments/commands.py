"""
Amendment Commands - requests to move a budget ceiling
"""

from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from procurement_ledger.kernel.money import to_money


class _AmendmentCommand(BaseModel):
    amount: Decimal = Field(..., gt=0)
    reason: str = Field(..., min_length=1, max_length=1000)

    @field_validator("amount", mode="before")
    @classmethod
    def _money(cls, v):
        return to_money(v)

    @field_validator("reason")
    @classmethod
    def _reason_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("reason is required")
        return v


class ApplyIncrease(_AmendmentCommand):
    """Raise a budget item's ceiling"""

    budget_item_id: str


class ApplyDecrease(_AmendmentCommand):
    """
    Lower a budget item's ceiling

    Refused if the ceiling would go negative; allowed (with a warning) if it
    drops below what is already committed.
    """

    budget_item_id: str


class ApplyTransfer(_AmendmentCommand):
    """
    Move ceiling from one budget item to another in the same fiscal year

    Both sides change together or neither does.
    """

    from_budget_item_id: str
    to_budget_item_id: str
