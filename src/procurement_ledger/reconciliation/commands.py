"""
Reconciliation Commands - receipt intake and linking
"""

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from procurement_ledger.kernel.money import to_money
from procurement_ledger.reconciliation.models import ReceiptStatus


class RecordReceipt(BaseModel):
    """Register a receipt the host application has stored"""

    total_amount: Decimal | None = Field(default=None, ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    status: ReceiptStatus = ReceiptStatus.PENDING
    vendor_id: str | None = None
    merchant_name: str | None = Field(default=None, max_length=200)
    receipt_date: date | None = None
    file_ref: str | None = None

    @field_validator("total_amount", mode="before")
    @classmethod
    def _money(cls, v):
        return None if v is None else to_money(v)

    @field_validator("currency")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()


class UpdateReceiptStatus(BaseModel):
    receipt_id: str
    status: ReceiptStatus
    total_amount: Decimal | None = Field(default=None, ge=0)

    @field_validator("total_amount", mode="before")
    @classmethod
    def _money(cls, v):
        return None if v is None else to_money(v)


class LinkReceipt(BaseModel):
    receipt_id: str
    po_id: str


class UnlinkReceipt(BaseModel):
    receipt_id: str
