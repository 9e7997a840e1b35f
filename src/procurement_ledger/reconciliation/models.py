"""
Reconciliation Models - receipts and how well they cover purchase orders

Receipts come from outside the ledger (upload, OCR, import). The ledger
only keeps what it needs to match and summarize them: amount, currency,
processing status, vendor hints, date and an opaque file reference.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class ReceiptStatus(str, Enum):
    """Processing status of a receipt"""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class Receipt(BaseModel):
    """
    A receipt, optionally linked to one purchase order

    total_amount is None until extraction produced one; such receipts
    count as zero.
    """

    receipt_id: str
    total_amount: Decimal | None = None
    currency: str = "USD"
    status: ReceiptStatus = ReceiptStatus.PENDING
    vendor_id: str | None = None
    merchant_name: str | None = None
    receipt_date: date | None = None
    file_ref: str | None = None
    po_id: str | None = None
    linked_by: str | None = None
    linked_at: datetime | None = None
    created_at: datetime
    version: int = 0

    @property
    def counts_toward_total(self) -> bool:
        return self.status != ReceiptStatus.FAILED


class ReconciliationSummary(BaseModel):
    """
    Receipt coverage of one purchase order

    Computed on read; never stored.
    """

    po_id: str
    po_number: str
    po_total: Decimal
    receipted_total: Decimal
    remaining_amount: Decimal
    receipt_count: int
    percent_covered: Decimal
    receipts: list[Receipt] = Field(default_factory=list)


class MatchSuggestion(BaseModel):
    """
    A ranked candidate for linking

    candidate_id is a PO id when suggesting POs for a receipt and a receipt
    id when suggesting receipts for a PO.
    """

    candidate_id: str
    label: str
    score: int
    reasons: list[str]


class LinkResult(BaseModel):
    """Outcome of linking a receipt; amount_warning never blocks the link"""

    receipt: Receipt
    amount_warning: str | None = None
