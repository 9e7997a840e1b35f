"""
Reconciliation Events - receipt intake and link changes

None of these touch a budget item.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel

from procurement_ledger.reconciliation.models import ReceiptStatus

STREAM_TYPE = "receipt"


class ReceiptRecorded(BaseModel):
    receipt_id: str
    total_amount: Decimal | None
    currency: str
    status: ReceiptStatus
    vendor_id: str | None
    merchant_name: str | None
    receipt_date: date | None
    file_ref: str | None
    recorded_at: datetime


class ReceiptStatusChanged(BaseModel):
    receipt_id: str
    previous_status: ReceiptStatus
    status: ReceiptStatus
    total_amount: Decimal | None
    changed_at: datetime


class ReceiptLinked(BaseModel):
    """previous_po_id is set when the receipt moved from another PO"""

    receipt_id: str
    po_id: str
    previous_po_id: str | None
    linked_by: str | None
    linked_at: datetime


class ReceiptUnlinked(BaseModel):
    receipt_id: str
    po_id: str
    unlinked_by: str | None
    unlinked_at: datetime
