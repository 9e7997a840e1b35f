"""
Ledger Module - Budget items and their balances

Each budget item tracks a ceiling (budget_amount), money promised to
approved purchase orders (encumbered) and money spent on completed ones
(actual_spent). All balance changes go through a LedgerTransaction so a
request either moves every item it touches or none of them.

Fun fact: "Encumbrance" comes from the Old French for "obstruction" - the
money is still there, it is just blocked.
"""

from procurement_ledger.ledger.handlers import LedgerTransaction
from procurement_ledger.ledger.models import BudgetItem, LedgerDiscrepancy, NowOverBudget

__all__ = [
    "BudgetItem",
    "LedgerDiscrepancy",
    "LedgerTransaction",
    "NowOverBudget",
]
