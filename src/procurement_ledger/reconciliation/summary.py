"""
Receipt coverage of a purchase order

Read-only: nothing here touches the ledger. FAILED receipts are left out
of the totals and receipts without an amount count as zero. Amounts are
summed as-is regardless of currency.
"""

from decimal import ROUND_HALF_UP, Decimal

from procurement_ledger.kernel.money import money_sum
from procurement_ledger.purchasing.models import PurchaseOrder
from procurement_ledger.reconciliation.models import Receipt, ReconciliationSummary

HUNDRED = Decimal("100")


def receipted_total(receipts: list[Receipt]) -> Decimal:
    """Sum of amounts of receipts that count (not FAILED)"""
    return money_sum(
        r.total_amount or Decimal("0") for r in receipts if r.counts_toward_total
    )


def percent_covered(po_total: Decimal, receipted: Decimal) -> Decimal:
    """
    min(100, receipted / po_total * 100), to two places; 0 for a zero total
    """
    if po_total <= 0:
        return Decimal("0.00")
    pct = min(HUNDRED, receipted / po_total * HUNDRED)
    return pct.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def compute_reconciliation_summary(
    po: PurchaseOrder, receipts: list[Receipt]
) -> ReconciliationSummary:
    """
    Summarize how far `receipts` (those linked to `po`) cover its total

    Args:
        po: The purchase order
        receipts: Receipts currently linked to it

    Returns:
        ReconciliationSummary; receipts lists every linked receipt,
        receipt_count counts only those included in the total
    """
    counted = [r for r in receipts if r.counts_toward_total]
    received = receipted_total(counted)
    return ReconciliationSummary(
        po_id=po.po_id,
        po_number=po.po_number,
        po_total=po.total,
        receipted_total=received,
        remaining_amount=po.total - received,
        receipt_count=len(counted),
        percent_covered=percent_covered(po.total, received),
        receipts=list(receipts),
    )
