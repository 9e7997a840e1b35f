"""
Purchase Order Invariants - pure checks on the PO lifecycle
"""

from decimal import Decimal

from procurement_ledger.kernel.errors import (
    BudgetItemNotFound,
    InvalidTransition,
    InvariantViolation,
    NoteRequired,
    NotEditable,
    OverrideNotPermitted,
    PurchaseOrderNotFound,
    SelfApprovalForbidden,
    ValidationError,
)
from procurement_ledger.kernel.identity import Actor
from procurement_ledger.kernel.policy import ProcurementPolicy
from procurement_ledger.ledger.models import BudgetItem
from procurement_ledger.purchasing.models import (
    ALLOWED_TRANSITIONS,
    NOTE_REQUIRED,
    POStatus,
    PurchaseOrder,
    TransitionAction,
)


def validate_po_exists(po_id: str, purchase_orders: dict[str, PurchaseOrder]) -> PurchaseOrder:
    po = purchase_orders.get(po_id)
    if po is None:
        raise PurchaseOrderNotFound(po_id)
    return po


def validate_transition(po: PurchaseOrder, new_status: POStatus) -> TransitionAction:
    """
    Look up the edge for current -> new_status

    Raises:
        InvalidTransition: No such edge (including same-status moves)
    """
    action = ALLOWED_TRANSITIONS.get((po.status, new_status))
    if action is None:
        raise InvalidTransition(po.po_id, po.status.value, new_status.value)
    return action


def validate_note(po: PurchaseOrder, new_status: POStatus, note: str | None) -> None:
    """
    Raises:
        NoteRequired: Reject, cancel from pending, and void need a non-blank note
    """
    if (po.status, new_status) in NOTE_REQUIRED and not (note and note.strip()):
        raise NoteRequired(new_status.value)


def validate_editable(po: PurchaseOrder) -> None:
    """
    Raises:
        NotEditable: Line items and header only change in DRAFT
    """
    if po.status != POStatus.DRAFT:
        raise NotEditable(po.po_id, po.status.value)


def validate_has_line_items(po: PurchaseOrder) -> None:
    if not po.line_items:
        raise ValidationError(
            f"Purchase order {po.po_number} has no line items", field="line_items"
        )


def validate_line_amounts(po: PurchaseOrder) -> None:
    """
    Re-verify the stored lines before money moves

    Raises:
        InvariantViolation: A stored line has a non-positive amount
    """
    for line in po.line_items:
        if line.amount <= Decimal("0"):
            raise InvariantViolation(
                f"Purchase order {po.po_number} line {line.line_item_id} has "
                f"non-positive amount {line.amount}",
                budget_item_id=line.budget_item_id,
            )


def validate_line_budget_items(
    budget_item_ids: list[str], budget_items: dict[str, BudgetItem]
) -> None:
    """
    Raises:
        BudgetItemNotFound: A line points at an unknown or deleted item
    """
    for budget_item_id in budget_item_ids:
        item = budget_items.get(budget_item_id)
        if item is None or item.deleted:
            raise BudgetItemNotFound(budget_item_id)


def validate_not_self_approval(
    po: PurchaseOrder, actor: Actor, policy: ProcurementPolicy
) -> None:
    if policy.forbid_self_approval and actor.actor_id == po.requester_id:
        raise SelfApprovalForbidden(po.po_id, actor.actor_id)


def validate_override_permitted(actor: Actor, policy: ProcurementPolicy) -> None:
    if not policy.can_override_budget(actor.role):
        raise OverrideNotPermitted(
            actor.actor_id, actor.role, list(policy.over_budget_override_roles)
        )


def validate_receipt_for_completion(
    po: PurchaseOrder, linked_receipt_count: int, policy: ProcurementPolicy
) -> None:
    if policy.require_receipt_for_completion and linked_receipt_count == 0:
        raise ValidationError(
            f"Purchase order {po.po_number} needs a linked receipt before completion",
            field="receipts",
        )
