"""
Purchase Order Commands - what requesters and approvers ask for

Shape validation only (positive amounts, non-blank text). State checks
happen in the handlers against current projections.
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from procurement_ledger.kernel.money import to_money
from procurement_ledger.purchasing.models import POStatus


class LineItemInput(BaseModel):
    """A PO line as entered by the requester"""

    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(..., gt=0)
    budget_item_id: str = Field(..., min_length=1)

    @field_validator("amount", mode="before")
    @classmethod
    def _money(cls, v):
        return to_money(v)

    @field_validator("description")
    @classmethod
    def _strip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class CreatePurchaseOrder(BaseModel):
    """
    Open a new purchase order in DRAFT

    Lines are optional at creation and can be saved later while DRAFT.
    """

    vendor_name: str = Field(..., min_length=1, max_length=200)
    vendor_id: str | None = None
    department: str | None = Field(default=None, max_length=100)
    po_date: date
    notes: str | None = Field(default=None, max_length=2000)
    line_items: list[LineItemInput] = Field(default_factory=list)


class SaveLineItems(BaseModel):
    """Replace all line items of a DRAFT purchase order"""

    po_id: str
    line_items: list[LineItemInput]


class UpdatePurchaseOrderDetails(BaseModel):
    """Change header fields of a DRAFT purchase order (None = unchanged)"""

    po_id: str
    vendor_name: str | None = Field(default=None, min_length=1, max_length=200)
    vendor_id: str | None = None
    department: str | None = Field(default=None, max_length=100)
    po_date: date | None = None
    notes: str | None = Field(default=None, max_length=2000)


class TransitionPurchaseOrder(BaseModel):
    """
    Move a purchase order to a new status

    override asks to approve beyond available budget and needs an
    authorized role.
    """

    po_id: str
    new_status: POStatus
    note: str | None = Field(default=None, max_length=2000)
    override: bool = False
