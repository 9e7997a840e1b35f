"""
Procurement Ledger - Event-sourced budget ledger and purchase order lifecycle

Budget items carry a ceiling, an encumbered balance and an actual spend.
Purchase orders move through a fixed lifecycle; every transition that
touches money updates those balances atomically, under per-item locks, and
leaves an append-only trail of events.

Fun fact: Encumbrance accounting dates back to US municipal budgeting in the
early 1900s, when cities kept overspending money they had already promised.
"""

from procurement_ledger.engine import ProcurementEngine

__version__ = "0.1.0"
__all__ = ["ProcurementEngine", "__version__"]
