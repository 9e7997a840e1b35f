"""
Amendment Models - the audit trail of budget ceiling changes

An amendment is never edited or removed. A transfer shows up as two rows,
TRANSFER_OUT on the source and TRANSFER_IN on the destination, each naming
the other through related_amendment_id.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from procurement_ledger.ledger.models import NowOverBudget


class AmendmentType(str, Enum):
    """Kinds of ceiling change"""

    INCREASE = "INCREASE"
    DECREASE = "DECREASE"
    TRANSFER_OUT = "TRANSFER_OUT"
    TRANSFER_IN = "TRANSFER_IN"

    @property
    def is_transfer(self) -> bool:
        return self in (AmendmentType.TRANSFER_OUT, AmendmentType.TRANSFER_IN)


class BudgetAmendment(BaseModel):
    """
    One row of the amendment log

    Attributes:
        amendment_id: Unique identifier
        amendment_type: INCREASE, DECREASE, TRANSFER_OUT or TRANSFER_IN
        budget_item_id: Item whose ceiling changed
        budget_item_code: Code of that item at the time
        amount: Always positive; the type gives the direction
        reason: Why (required)
        fiscal_year: Year of the budget item
        previous_amount / new_amount: Ceiling before and after
        related_amendment_id: The paired row of a transfer
        from_budget_item_id / to_budget_item_id: Transfer endpoints
    """

    amendment_id: str
    amendment_type: AmendmentType
    budget_item_id: str
    budget_item_code: str
    amount: Decimal
    reason: str
    fiscal_year: int
    previous_amount: Decimal
    new_amount: Decimal
    related_amendment_id: str | None = None
    from_budget_item_id: str | None = None
    to_budget_item_id: str | None = None
    created_by: str | None = None
    created_at: datetime

    model_config = {"frozen": True}


class AmendmentResult(BaseModel):
    """
    What an amendment request produced

    warnings carries NowOverBudget for any item a decrease pushed below its
    commitments. The amendment itself was applied.
    """

    amendments: list[BudgetAmendment]
    warnings: list[NowOverBudget] = Field(default_factory=list)
