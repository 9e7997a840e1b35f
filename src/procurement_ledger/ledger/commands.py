"""
Budget Ledger Commands - administrative changes to budget items

Balance changes (reserve, release, realize) are not commands: they happen
only as side effects of purchase order transitions. Ceiling changes go
through the amendment processor.
"""

from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from procurement_ledger.kernel.money import to_money


class CreateBudgetItem(BaseModel):
    """
    Create a budget item (manual entry or import)

    Requirements:
    - code unique among live items
    - budget_amount >= 0
    """

    code: str = Field(..., min_length=1, max_length=50)
    description: str = Field(..., min_length=1, max_length=500)
    fiscal_year: int = Field(..., ge=1900, le=2200)
    budget_amount: Decimal = Field(..., ge=0)
    category: str | None = Field(default=None, max_length=100)

    @field_validator("code", "description")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("budget_amount", mode="before")
    @classmethod
    def _money(cls, v):
        return to_money(v)


class DeleteBudgetItem(BaseModel):
    """
    Delete a budget item

    Refused while any non-terminal purchase order has a line on it.
    """

    budget_item_id: str
