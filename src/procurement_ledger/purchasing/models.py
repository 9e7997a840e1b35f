"""
Purchase Order Models - the PO lifecycle and its line items

State machine (every other move is refused):

    DRAFT ──submit──> PENDING_APPROVAL ──approve──> APPROVED ──complete──> COMPLETED
      │                 │        │                    │                       │
    cancel            reject   cancel               void                    void
      │                 │        │                    │                       │
      v                 v        v                    v                       v
    CANCELLED        REJECTED  CANCELLED           CANCELLED               CANCELLED
                        │
                      revise ──> DRAFT

Ledger effects: approve reserves every line, complete realizes every line,
void of APPROVED releases every line, void of COMPLETED reverses the
realization.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, computed_field

from procurement_ledger.kernel.money import money_sum
from procurement_ledger.ledger.models import NowOverBudget


class POStatus(str, Enum):
    """Purchase order lifecycle states"""

    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self == POStatus.CANCELLED


class TransitionAction(str, Enum):
    """Named edges of the state machine"""

    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"
    REVISE = "revise"
    COMPLETE = "complete"
    VOID = "void"


ALLOWED_TRANSITIONS: dict[tuple[POStatus, POStatus], TransitionAction] = {
    (POStatus.DRAFT, POStatus.PENDING_APPROVAL): TransitionAction.SUBMIT,
    (POStatus.PENDING_APPROVAL, POStatus.APPROVED): TransitionAction.APPROVE,
    (POStatus.PENDING_APPROVAL, POStatus.REJECTED): TransitionAction.REJECT,
    (POStatus.PENDING_APPROVAL, POStatus.CANCELLED): TransitionAction.CANCEL,
    (POStatus.REJECTED, POStatus.DRAFT): TransitionAction.REVISE,
    (POStatus.APPROVED, POStatus.COMPLETED): TransitionAction.COMPLETE,
    (POStatus.APPROVED, POStatus.CANCELLED): TransitionAction.VOID,
    (POStatus.COMPLETED, POStatus.CANCELLED): TransitionAction.VOID,
    (POStatus.DRAFT, POStatus.CANCELLED): TransitionAction.CANCEL,
}

# DRAFT -> CANCELLED is the only cancel/void edge without a mandatory note
NOTE_REQUIRED: frozenset[tuple[POStatus, POStatus]] = frozenset(
    {
        (POStatus.PENDING_APPROVAL, POStatus.REJECTED),
        (POStatus.PENDING_APPROVAL, POStatus.CANCELLED),
        (POStatus.APPROVED, POStatus.CANCELLED),
        (POStatus.COMPLETED, POStatus.CANCELLED),
    }
)


class POLineItem(BaseModel):
    """
    One line of a purchase order

    line_item_id doubles as the reservation token on the budget item.
    """

    line_item_id: str
    description: str
    amount: Decimal
    budget_item_id: str


class StatusChange(BaseModel):
    """One entry of a PO's status history"""

    from_status: POStatus | None
    to_status: POStatus
    actor_id: str | None
    note: str | None = None
    occurred_at: datetime
    automatic: bool = False


class PurchaseOrder(BaseModel):
    """
    A purchase order

    total is always the sum of line item amounts. warnings carries the
    NowOverBudget results of the transition that returned this copy.
    """

    po_id: str
    po_number: str
    po_date: date
    vendor_id: str | None = None
    vendor_name: str
    requester_id: str
    requester_name: str = ""
    department: str | None = None
    status: POStatus = POStatus.DRAFT
    line_items: list[POLineItem] = Field(default_factory=list)
    notes: str | None = None

    submitted_at: datetime | None = None
    approved_by: str | None = None
    approved_at: datetime | None = None
    approval_note: str | None = None
    auto_approved: bool = False
    over_budget_override: bool = False
    rejected_by: str | None = None
    rejected_at: datetime | None = None
    rejection_note: str | None = None
    completed_by: str | None = None
    completed_at: datetime | None = None
    cancelled_by: str | None = None
    cancelled_at: datetime | None = None
    cancellation_note: str | None = None
    voided_by: str | None = None
    voided_at: datetime | None = None
    void_note: str | None = None
    auto_approval_note: str | None = None

    receipt_ids: list[str] = Field(default_factory=list)
    history: list[StatusChange] = Field(default_factory=list)
    created_at: datetime
    version: int = 0

    # Set only on the copy returned by a transition; never projected
    warnings: list[NowOverBudget] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> Decimal:
        return money_sum(line.amount for line in self.line_items)

    def budget_item_ids(self) -> list[str]:
        """Distinct budget items referenced by the lines, sorted"""
        return sorted({line.budget_item_id for line in self.line_items})

    def amounts_by_budget_item(self) -> dict[str, Decimal]:
        """Line amounts summed per budget item"""
        totals: dict[str, Decimal] = {}
        for line in self.line_items:
            totals[line.budget_item_id] = totals.get(line.budget_item_id, Decimal("0")) + line.amount
        return totals
