"""
Purchase Order Events - facts about the PO lifecycle

A transition's PO event and its budget item events share one command_id
and are committed in one batch.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel

from procurement_ledger.purchasing.models import POLineItem, POStatus

STREAM_TYPE = "purchase_order"


class PurchaseOrderCreated(BaseModel):
    """A PO was opened in DRAFT with a freshly allocated number"""

    po_id: str
    po_number: str
    po_date: date
    vendor_id: str | None
    vendor_name: str
    requester_id: str
    requester_name: str
    department: str | None
    notes: str | None
    line_items: list[POLineItem]
    created_at: datetime


class LineItemsSaved(BaseModel):
    """The line items of a DRAFT PO were replaced"""

    po_id: str
    line_items: list[POLineItem]
    total: Decimal
    saved_at: datetime


class PurchaseOrderDetailsUpdated(BaseModel):
    """Header fields of a DRAFT PO changed (only the listed fields)"""

    po_id: str
    changes: dict
    updated_at: datetime


class PurchaseOrderSubmitted(BaseModel):
    """DRAFT -> PENDING_APPROVAL"""

    po_id: str
    total: Decimal
    submitted_by: str
    submitted_at: datetime


class AutoApprovalDeclined(BaseModel):
    """Auto-approval looked at the PO and left it pending"""

    po_id: str
    reason_code: str
    note: str
    evaluated_at: datetime


class PurchaseOrderApproved(BaseModel):
    """
    PENDING_APPROVAL -> APPROVED; every line is now reserved

    auto_approved is True when the evaluator approved on submit.
    """

    po_id: str
    total: Decimal
    approved_by: str
    approved_at: datetime
    note: str | None
    auto_approved: bool = False
    over_budget_override: bool = False


class PurchaseOrderRejected(BaseModel):
    """PENDING_APPROVAL -> REJECTED"""

    po_id: str
    rejected_by: str
    rejected_at: datetime
    note: str


class PurchaseOrderCancelled(BaseModel):
    """DRAFT or PENDING_APPROVAL -> CANCELLED (no money was held)"""

    po_id: str
    from_status: POStatus
    cancelled_by: str
    cancelled_at: datetime
    note: str | None


class PurchaseOrderRevised(BaseModel):
    """REJECTED -> DRAFT; rejection and auto-approval notes are cleared"""

    po_id: str
    revised_by: str
    revised_at: datetime
    note: str | None


class PurchaseOrderCompleted(BaseModel):
    """APPROVED -> COMPLETED; every line is now actual spend"""

    po_id: str
    total: Decimal
    completed_by: str
    completed_at: datetime
    note: str | None


class PurchaseOrderVoided(BaseModel):
    """
    APPROVED or COMPLETED -> CANCELLED

    From APPROVED the reservations were released; from COMPLETED the
    actual spend was reversed.
    """

    po_id: str
    from_status: POStatus
    total: Decimal
    voided_by: str
    voided_at: datetime
    note: str
