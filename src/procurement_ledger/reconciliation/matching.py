"""
Receipt <-> purchase order match scoring

Scores are additive points with a human-readable reason for each:

    vendor id match                    +40
    merchant name ~ vendor name        +30   (only when the receipt has no vendor id)
    amount within tolerance            +40
    amount within tolerance * factor   +20
    date within 3 days                 +20
    date within 7 days                 +15
    date within the window             +10
    PO already has receipts            -20   (only if something else matched)

Tolerance is relative: policy.match_amount_tolerance times the larger of
the two amounts. Candidates with no reasons are dropped; the rest are
sorted by score, best first.
"""

from datetime import date
from decimal import Decimal

from procurement_ledger.kernel.policy import ProcurementPolicy
from procurement_ledger.purchasing.models import POStatus, PurchaseOrder
from procurement_ledger.reconciliation.models import MatchSuggestion, Receipt

MATCHABLE_PO_STATUSES = (POStatus.APPROVED, POStatus.COMPLETED)


def _vendor_points(receipt: Receipt, po: PurchaseOrder) -> tuple[int, list[str]]:
    if receipt.vendor_id and po.vendor_id == receipt.vendor_id:
        return 40, ["Vendor match"]
    if not receipt.vendor_id and receipt.merchant_name and po.vendor_name:
        merchant = receipt.merchant_name.lower()
        vendor = po.vendor_name.lower()
        if merchant in vendor or vendor in merchant:
            return 30, ["Vendor name similar to merchant"]
    return 0, []


def _amount_points(
    receipt_amount: Decimal | None,
    target: Decimal | None,
    policy: ProcurementPolicy,
    suffix: str = "",
) -> tuple[int, list[str]]:
    if receipt_amount is None or target is None:
        return 0, []
    diff = abs(receipt_amount - target)
    tolerance = max(receipt_amount, target) * policy.match_amount_tolerance
    if diff <= tolerance:
        return 40, [f"Amount matches{suffix}"]
    if diff <= tolerance * policy.match_amount_close_factor:
        return 20, [f"Amount close{suffix}"]
    return 0, []


def _date_points(
    receipt_date: date | None, po_date: date | None, policy: ProcurementPolicy
) -> tuple[int, list[str]]:
    if receipt_date is None or po_date is None:
        return 0, []
    days = abs((receipt_date - po_date).days)
    if days <= 3:
        return 20, ["Date within 3 days"]
    if days <= 7:
        return 15, ["Date within 7 days"]
    if days <= policy.match_date_window_days:
        return 10, [f"Date within {policy.match_date_window_days} days"]
    return 0, []


def score_receipt_against_po(
    receipt: Receipt, po: PurchaseOrder, policy: ProcurementPolicy
) -> tuple[int, list[str]]:
    """
    Score a receipt against a PO's full total

    Returns:
        (score, reasons)
    """
    score = 0
    reasons: list[str] = []
    for points, why in (
        _vendor_points(receipt, po),
        _amount_points(receipt.total_amount, po.total, policy),
        _date_points(receipt.receipt_date, po.po_date, policy),
    ):
        score += points
        reasons.extend(why)

    if reasons and po.receipt_ids:
        score -= 20
        reasons.append("Already has linked receipts")
    return score, reasons


def score_receipt_against_remaining(
    receipt: Receipt,
    po: PurchaseOrder,
    receipted_so_far: Decimal,
    policy: ProcurementPolicy,
) -> tuple[int, list[str]]:
    """
    Score a receipt against what is still unreceipted on a PO

    Amount only scores while something remains. No already-linked penalty:
    a partially receipted PO is expected to collect more.
    """
    score = 0
    reasons: list[str] = []
    remaining = po.total - receipted_so_far
    amount: tuple[int, list[str]] = (0, [])
    if remaining > 0:
        amount = _amount_points(receipt.total_amount, remaining, policy, " remaining")
    for points, why in (
        _vendor_points(receipt, po),
        amount,
        _date_points(receipt.receipt_date, po.po_date, policy),
    ):
        score += points
        reasons.extend(why)
    return score, reasons


def _rank(suggestions: list[MatchSuggestion], limit: int) -> list[MatchSuggestion]:
    kept = [s for s in suggestions if s.reasons]
    kept.sort(key=lambda s: (-s.score, s.label))
    return kept[:limit]


def suggest_pos_for_receipt(
    receipt: Receipt,
    purchase_orders: list[PurchaseOrder],
    policy: ProcurementPolicy,
) -> list[MatchSuggestion]:
    """
    Rank APPROVED / COMPLETED purchase orders for a receipt

    Args:
        receipt: Receipt to place
        purchase_orders: Candidate pool (other statuses are ignored)
        policy: Tolerances, window and result limit

    Returns:
        Up to policy.match_max_suggestions suggestions, best first
    """
    suggestions = []
    for po in purchase_orders:
        if po.status not in MATCHABLE_PO_STATUSES:
            continue
        score, reasons = score_receipt_against_po(receipt, po, policy)
        suggestions.append(
            MatchSuggestion(candidate_id=po.po_id, label=po.po_number, score=score, reasons=reasons)
        )
    return _rank(suggestions, policy.match_max_suggestions)


def suggest_receipts_for_po(
    po: PurchaseOrder,
    unlinked_receipts: list[Receipt],
    receipted_so_far: Decimal,
    policy: ProcurementPolicy,
) -> list[MatchSuggestion]:
    """
    Rank unlinked receipts for a purchase order's remaining amount

    Returns:
        Up to policy.match_max_suggestions suggestions, best first
    """
    suggestions = []
    for receipt in unlinked_receipts:
        if receipt.po_id is not None:
            continue
        score, reasons = score_receipt_against_remaining(receipt, po, receipted_so_far, policy)
        suggestions.append(
            MatchSuggestion(
                candidate_id=receipt.receipt_id,
                label=receipt.merchant_name or receipt.receipt_id,
                score=score,
                reasons=reasons,
            )
        )
    return _rank(suggestions, policy.match_max_suggestions)
