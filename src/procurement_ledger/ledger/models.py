"""
Budget Ledger Models - budget items and their balances

A budget item tracks three numbers:
- budget_amount: the ceiling, moved only by amendments
- encumbered: money reserved by APPROVED purchase orders
- actual_spent: money realized by COMPLETED purchase orders

available = budget_amount - encumbered - actual_spent. It can go negative
only through an authorized override or an allocation decrease, and then the
item is flagged over budget.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, computed_field

from procurement_ledger.kernel.money import format_money


class BudgetItem(BaseModel):
    """
    A line of the annual budget (e.g. "5100 - Office supplies")

    Attributes:
        budget_item_id: Unique identifier
        code: Human code, unique among live items
        description: What the line is for
        category: Optional grouping label
        fiscal_year: Budget year this item belongs to
        budget_amount: Current ceiling
        encumbered: Reserved by approved POs (never negative)
        actual_spent: Realized by completed POs (never negative)
        reservations: reservation token -> amount currently encumbered
        realizations: reservation token -> amount currently spent
        deleted: Soft-deleted items are hidden from listings
        version: Event stream version (optimistic locking)
    """

    budget_item_id: str
    code: str
    description: str
    category: str | None = None
    fiscal_year: int
    budget_amount: Decimal
    encumbered: Decimal = Decimal("0.00")
    actual_spent: Decimal = Decimal("0.00")
    reservations: dict[str, Decimal] = Field(default_factory=dict)
    realizations: dict[str, Decimal] = Field(default_factory=dict)
    created_at: datetime
    created_by: str | None = None
    deleted: bool = False
    deleted_at: datetime | None = None
    version: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def committed(self) -> Decimal:
        return self.encumbered + self.actual_spent

    @computed_field  # type: ignore[prop-decorator]
    @property
    def available(self) -> Decimal:
        return self.budget_amount - self.encumbered - self.actual_spent

    @computed_field  # type: ignore[prop-decorator]
    @property
    def over_budget(self) -> bool:
        return self.available < 0

    def utilization(self) -> Decimal:
        """Committed share of the ceiling (1 when the ceiling is zero but used)"""
        if self.budget_amount > 0:
            return self.committed / self.budget_amount
        return Decimal("1") if self.committed > 0 else Decimal("0")

    def label(self) -> str:
        return f"{self.code} - {self.description}"


class NowOverBudget(BaseModel):
    """
    Warning: a budget item's commitments now exceed its ceiling

    Raised by an allocation decrease below what is already committed, and
    by an override approval whose reservation drives available below zero.
    Returned next to the successful result (AmendmentResult.warnings,
    PurchaseOrder.warnings); the change is applied and the item is
    flagged, not blocked.
    """

    budget_item_id: str
    code: str
    budget_amount: Decimal
    committed: Decimal
    available: Decimal

    @property
    def message(self) -> str:
        return (
            f"Budget item {self.code} is now over budget: committed "
            f"{format_money(self.committed)} against a ceiling of "
            f"{format_money(self.budget_amount)}"
        )


class LedgerDiscrepancy(BaseModel):
    """One budget item whose stored balances disagree with its purchase orders"""

    budget_item_id: str
    code: str
    stored_encumbered: Decimal
    expected_encumbered: Decimal
    stored_actual_spent: Decimal
    expected_actual_spent: Decimal

