"""
Amendment Events - immutable records of ceiling changes

Each amendment request writes one amendment event plus the
AllocationAdjusted events on the affected budget items, all in one batch.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from procurement_ledger.amendments.models import AmendmentType

STREAM_TYPE = "amendment"


class BudgetAmendmentRecorded(BaseModel):
    """An INCREASE or DECREASE was applied"""

    amendment_id: str
    amendment_type: AmendmentType
    budget_item_id: str
    budget_item_code: str
    amount: Decimal
    reason: str
    fiscal_year: int
    previous_amount: Decimal
    new_amount: Decimal
    created_by: str | None
    created_at: datetime


class BudgetTransferRecorded(BaseModel):
    """
    A transfer was applied

    One event carries both halves; the log shows it as a TRANSFER_OUT row
    and a TRANSFER_IN row.
    """

    out_amendment_id: str
    in_amendment_id: str
    from_budget_item_id: str
    from_code: str
    from_previous_amount: Decimal
    from_new_amount: Decimal
    to_budget_item_id: str
    to_code: str
    to_previous_amount: Decimal
    to_new_amount: Decimal
    amount: Decimal
    reason: str
    fiscal_year: int
    created_by: str | None
    created_at: datetime
