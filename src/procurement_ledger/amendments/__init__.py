"""
Amendments Module - Auditable changes to budget ceilings

Increases, decreases and transfers between budget items. Every change is
recorded with its reason and the before/after amount; a transfer is two
linked rows that always commit together.
"""

from procurement_ledger.amendments.models import (
    AmendmentResult,
    AmendmentType,
    BudgetAmendment,
)

__all__ = ["AmendmentResult", "AmendmentType", "BudgetAmendment"]
