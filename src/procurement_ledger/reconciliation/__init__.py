"""
Reconciliation Module - Receipts against purchase orders

Receipts are linked to purchase orders as metadata only; budget balances
never change here. Provides coverage summaries and ranked match
suggestions in both directions.

Fun fact: The three-way match (PO, receipt, invoice) has been the
backbone of accounts-payable controls since long before computers.
"""

from procurement_ledger.reconciliation.models import (
    LinkResult,
    MatchSuggestion,
    Receipt,
    ReceiptStatus,
    ReconciliationSummary,
)

__all__ = [
    "LinkResult",
    "MatchSuggestion",
    "Receipt",
    "ReceiptStatus",
    "ReconciliationSummary",
]
