"""
Budget Ledger Events - facts about budget item balances

Every balance event records the amount moved and the balances after the
move, so replay sets state rather than re-deriving it.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

STREAM_TYPE = "budget_item"


class BudgetItemCreated(BaseModel):
    """A budget item was created with its initial ceiling"""

    budget_item_id: str
    code: str
    description: str
    category: str | None
    fiscal_year: int
    budget_amount: Decimal
    created_at: datetime
    created_by: str | None


class BudgetItemDeleted(BaseModel):
    """A budget item was soft-deleted (its history stays in the log)"""

    budget_item_id: str
    code: str
    deleted_at: datetime
    deleted_by: str | None


class FundsReserved(BaseModel):
    """
    Money was encumbered for an approved PO line

    over_budget_override is True when the reservation was allowed to drive
    available below zero by an authorized approver.
    """

    budget_item_id: str
    amount: Decimal
    token: str
    po_id: str | None
    encumbered_after: Decimal
    over_budget_override: bool = False


class FundsReleased(BaseModel):
    """
    An encumbrance was released (PO voided after approval)

    floored is True when the release asked for more than was encumbered
    and the balance was clamped at zero.
    """

    budget_item_id: str
    amount: Decimal
    token: str
    po_id: str | None
    encumbered_after: Decimal
    floored: bool = False


class FundsRealized(BaseModel):
    """An encumbrance became actual spend (PO completed)"""

    budget_item_id: str
    amount: Decimal
    token: str
    po_id: str | None
    encumbered_after: Decimal
    actual_spent_after: Decimal


class RealizationReversed(BaseModel):
    """Actual spend was backed out (completed PO voided)"""

    budget_item_id: str
    amount: Decimal
    token: str
    po_id: str | None
    actual_spent_after: Decimal


class AllocationAdjusted(BaseModel):
    """The ceiling moved by an amendment"""

    budget_item_id: str
    delta: Decimal
    previous_amount: Decimal
    new_amount: Decimal
    amendment_id: str | None
    now_over_budget: bool = False


# Notification only; published on the bus, never stored
class BudgetThresholdApproached(BaseModel):
    """Committed spend crossed the warning ratio of the ceiling"""

    budget_item_id: str
    code: str
    ratio: Decimal
    warning_ratio: Decimal
    available: Decimal
    detected_at: datetime
