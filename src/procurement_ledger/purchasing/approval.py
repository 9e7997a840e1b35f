"""
Auto-Approval Evaluator - may a small PO skip the human approver?

A pure function of the PO, the budget item balances and the policy. It
never reserves anything; an approved decision is carried out through the
normal approve path so the reservation rules are the same either way.

Lines that share a budget item are summed before the balance check, so two
lines cannot each fit while jointly overshooting.
"""

from decimal import Decimal

from pydantic import BaseModel

from procurement_ledger.kernel.money import format_money
from procurement_ledger.kernel.policy import ProcurementPolicy
from procurement_ledger.ledger.models import BudgetItem
from procurement_ledger.purchasing.models import POLineItem

REASON_DISABLED = "disabled"
REASON_OVER_THRESHOLD = "over_threshold"
REASON_INSUFFICIENT_BUDGET = "insufficient_budget"
REASON_APPROVED = "approved"


class AutoApprovalDecision(BaseModel):
    """
    Outcome of an auto-approval evaluation

    note is what gets stored on the PO when it stays pending; None when
    approved or when auto-approval is switched off.
    """

    approved: bool
    reason_code: str
    note: str | None = None
    budget_item_id: str | None = None


def evaluate_auto_approval(
    po_total: Decimal,
    line_items: list[POLineItem],
    budget_items: dict[str, BudgetItem],
    policy: ProcurementPolicy,
) -> AutoApprovalDecision:
    """
    Decide whether a submitted PO is approved automatically

    Approve iff auto-approval is enabled, po_total <= threshold, and every
    referenced budget item can absorb its lines. The threshold is checked
    first; a budget shortfall is still reported after it, so the note
    names the budget item even for a PO that is over the threshold.

    Args:
        po_total: Sum of the PO's lines
        line_items: The PO's lines
        budget_items: Current balances, keyed by id
        policy: Threshold and on/off switch

    Returns:
        AutoApprovalDecision
    """
    if not policy.auto_approval_enabled:
        return AutoApprovalDecision(approved=False, reason_code=REASON_DISABLED)

    notes: list[str] = []
    reason_code = REASON_APPROVED
    shortfall_item_id: str | None = None

    if po_total > policy.auto_approval_threshold:
        reason_code = REASON_OVER_THRESHOLD
        notes.append(
            f"Over auto-approval threshold ({format_money(policy.auto_approval_threshold)})"
        )

    shortfall = _first_budget_shortfall(line_items, budget_items)
    if shortfall is not None:
        shortfall_item_id, shortfall_note = shortfall
        if reason_code == REASON_APPROVED:
            reason_code = REASON_INSUFFICIENT_BUDGET
        notes.append(shortfall_note)

    if reason_code == REASON_APPROVED:
        return AutoApprovalDecision(approved=True, reason_code=REASON_APPROVED)
    return AutoApprovalDecision(
        approved=False,
        reason_code=reason_code,
        note="; ".join(notes),
        budget_item_id=shortfall_item_id,
    )


def _first_budget_shortfall(
    line_items: list[POLineItem], budget_items: dict[str, BudgetItem]
) -> tuple[str, str] | None:
    """(budget_item_id, note) for the first item, by code, that cannot absorb its lines"""
    needed: dict[str, Decimal] = {}
    for line in line_items:
        needed[line.budget_item_id] = needed.get(line.budget_item_id, Decimal("0")) + line.amount

    for budget_item_id in sorted(needed, key=lambda i: _sort_key(i, budget_items)):
        item = budget_items.get(budget_item_id)
        if item is None or item.deleted:
            return budget_item_id, f"Would exceed budget: unknown budget item {budget_item_id}"
        if needed[budget_item_id] > item.available:
            return budget_item_id, (
                f"Would exceed budget: {item.label()} "
                f"(remaining: {format_money(item.available)})"
            )
    return None


def _sort_key(budget_item_id: str, budget_items: dict[str, BudgetItem]) -> str:
    item = budget_items.get(budget_item_id)
    return item.code if item is not None else budget_item_id
