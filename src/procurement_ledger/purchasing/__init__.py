"""
Purchasing Module - Purchase order lifecycle

Draft editing, submission with optional auto-approval, manual approval,
rejection and revision, completion, cancellation and void. Each state
change carries its ledger effect in the same commit.
"""

from procurement_ledger.purchasing.approval import AutoApprovalDecision
from procurement_ledger.purchasing.models import (
    ALLOWED_TRANSITIONS,
    POLineItem,
    POStatus,
    PurchaseOrder,
    StatusChange,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AutoApprovalDecision",
    "POLineItem",
    "POStatus",
    "PurchaseOrder",
    "StatusChange",
]
