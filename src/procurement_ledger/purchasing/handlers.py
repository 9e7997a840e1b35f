"""
Purchase Order Handlers - Command→Event transformation for the PO lifecycle

Handlers:
1. Load current state (from projections)
2. Validate invariants (transition edge, note, authority, editability)
3. Drive ledger effects through a LedgerTransaction
4. Return PO events; the budget item events stay in the transaction

The façade appends both lists in a single batch, so a transition and its
ledger effects commit together or not at all.
"""

from datetime import datetime

from pydantic import BaseModel

from procurement_ledger.kernel.events import Event, create_event
from procurement_ledger.kernel.identity import SYSTEM_ACTOR, Actor
from procurement_ledger.kernel.ids import generate_id
from procurement_ledger.kernel.logging import get_logger
from procurement_ledger.kernel.metrics import auto_approval_decisions_total
from procurement_ledger.kernel.money import money_sum
from procurement_ledger.kernel.policy import ProcurementPolicy
from procurement_ledger.kernel.time import TimeProvider
from procurement_ledger.ledger.handlers import LedgerTransaction
from procurement_ledger.ledger.models import BudgetItem
from procurement_ledger.purchasing.approval import (
    AutoApprovalDecision,
    REASON_DISABLED,
    evaluate_auto_approval,
)
from procurement_ledger.purchasing.commands import (
    CreatePurchaseOrder,
    LineItemInput,
    SaveLineItems,
    TransitionPurchaseOrder,
    UpdatePurchaseOrderDetails,
)
from procurement_ledger.purchasing.events import (
    STREAM_TYPE,
    AutoApprovalDeclined,
    LineItemsSaved,
    PurchaseOrderApproved,
    PurchaseOrderCancelled,
    PurchaseOrderCompleted,
    PurchaseOrderCreated,
    PurchaseOrderDetailsUpdated,
    PurchaseOrderRejected,
    PurchaseOrderRevised,
    PurchaseOrderSubmitted,
    PurchaseOrderVoided,
)
from procurement_ledger.purchasing.invariants import (
    validate_editable,
    validate_has_line_items,
    validate_line_amounts,
    validate_line_budget_items,
    validate_note,
    validate_not_self_approval,
    validate_override_permitted,
    validate_receipt_for_completion,
    validate_transition,
)
from procurement_ledger.purchasing.models import (
    POLineItem,
    POStatus,
    PurchaseOrder,
    TransitionAction,
)

logger = get_logger(__name__)


class _POStream:
    """Builds sequentially versioned events for one purchase order"""

    def __init__(
        self, po: PurchaseOrder, command_id: str, actor_id: str | None, now: datetime
    ) -> None:
        self.po_id = po.po_id
        self.version = po.version
        self.command_id = command_id
        self.actor_id = actor_id
        self.now = now
        self.events: list[Event] = []

    def emit(self, event_type: str, payload: BaseModel) -> None:
        self.version += 1
        self.events.append(
            create_event(
                event_id=generate_id(),
                stream_id=self.po_id,
                stream_type=STREAM_TYPE,
                event_type=event_type,
                occurred_at=self.now,
                command_id=self.command_id,
                actor_id=self.actor_id,
                payload=payload.model_dump(mode="json"),
                version=self.version,
            )
        )


def _build_lines(requested: list[LineItemInput]) -> list[POLineItem]:
    return [
        POLineItem(
            line_item_id=generate_id(),
            description=line.description,
            amount=line.amount,
            budget_item_id=line.budget_item_id,
        )
        for line in requested
    ]


class PurchaseOrderHandlers:
    """
    Command handlers for the purchase order module

    Handlers convert commands into events. They depend on projections for
    current state and on a LedgerTransaction for balance changes.
    """

    def __init__(self, time_provider: TimeProvider, policy: ProcurementPolicy) -> None:
        """
        Args:
            time_provider: For timestamps (injectable for testing)
            policy: Approval, threshold and completion rules
        """
        self.time_provider = time_provider
        self.policy = policy

    # ========== Draft Editing ==========

    def handle_create_purchase_order(
        self,
        command: CreatePurchaseOrder,
        command_id: str,
        actor: Actor,
        budget_items: dict[str, BudgetItem],
        po_number: str,
    ) -> list[Event]:
        """
        Handle CreatePurchaseOrder command

        Args:
            po_number: Number allocated by the registry for this PO

        Raises:
            BudgetItemNotFound: A line references an unknown budget item
        """
        validate_line_budget_items(
            [spec.budget_item_id for spec in command.line_items], budget_items
        )
        now = self.time_provider.now()
        po_id = generate_id()

        payload = PurchaseOrderCreated(
            po_id=po_id,
            po_number=po_number,
            po_date=command.po_date,
            vendor_id=command.vendor_id,
            vendor_name=command.vendor_name,
            requester_id=actor.actor_id,
            requester_name=actor.label,
            department=command.department,
            notes=command.notes,
            line_items=_build_lines(command.line_items),
            created_at=now,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=po_id,
                stream_type=STREAM_TYPE,
                event_type="PurchaseOrderCreated",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor.actor_id,
                payload=payload,
                version=1,
            )
        ]

    def handle_save_line_items(
        self,
        command: SaveLineItems,
        command_id: str,
        actor: Actor,
        po: PurchaseOrder,
        budget_items: dict[str, BudgetItem],
    ) -> list[Event]:
        """
        Handle SaveLineItems command (replace all lines)

        Raises:
            NotEditable: PO is not DRAFT
            BudgetItemNotFound: A line references an unknown budget item
        """
        validate_editable(po)
        validate_line_budget_items(
            [spec.budget_item_id for spec in command.line_items], budget_items
        )
        lines = _build_lines(command.line_items)
        stream = _POStream(po, command_id, actor.actor_id, self.time_provider.now())
        stream.emit(
            "LineItemsSaved",
            LineItemsSaved(
                po_id=po.po_id,
                line_items=lines,
                total=money_sum(line.amount for line in lines),
                saved_at=stream.now,
            ),
        )
        return stream.events

    def handle_update_details(
        self,
        command: UpdatePurchaseOrderDetails,
        command_id: str,
        actor: Actor,
        po: PurchaseOrder,
    ) -> list[Event]:
        """
        Handle UpdatePurchaseOrderDetails command

        Only fields explicitly given are changed. No event when nothing is.

        Raises:
            NotEditable: PO is not DRAFT
        """
        validate_editable(po)
        changes = command.model_dump(mode="json", exclude_unset=True, exclude={"po_id"})
        if not changes:
            return []
        stream = _POStream(po, command_id, actor.actor_id, self.time_provider.now())
        stream.emit(
            "PurchaseOrderDetailsUpdated",
            PurchaseOrderDetailsUpdated(po_id=po.po_id, changes=changes, updated_at=stream.now),
        )
        return stream.events

    # ========== Lifecycle ==========

    def handle_submit(
        self,
        command_id: str,
        actor: Actor,
        po: PurchaseOrder,
        txn: LedgerTransaction,
    ) -> tuple[list[Event], AutoApprovalDecision]:
        """
        DRAFT -> PENDING_APPROVAL, then auto-approval when enabled

        An approved decision runs the approve path inside the same
        transaction; a declined one records the note on the PO.

        Returns:
            (PO events, auto-approval decision)

        Raises:
            InvalidTransition: PO is not DRAFT
            ValidationError: PO has no line items
        """
        validate_transition(po, POStatus.PENDING_APPROVAL)
        validate_has_line_items(po)
        validate_line_amounts(po)

        stream = _POStream(po, command_id, actor.actor_id, self.time_provider.now())
        stream.emit(
            "PurchaseOrderSubmitted",
            PurchaseOrderSubmitted(
                po_id=po.po_id,
                total=po.total,
                submitted_by=actor.actor_id,
                submitted_at=stream.now,
            ),
        )

        balances = {
            budget_item_id: txn.item(budget_item_id) for budget_item_id in po.budget_item_ids()
        }
        decision = evaluate_auto_approval(po.total, po.line_items, balances, self.policy)
        auto_approval_decisions_total.labels(reason_code=decision.reason_code).inc()

        if decision.approved:
            logger.info("Purchase order auto-approved", po_id=po.po_id, po_number=po.po_number)
            self._approve(stream, po, txn, SYSTEM_ACTOR, note=None, auto=True, override=False)
        elif decision.reason_code != REASON_DISABLED:
            logger.info(
                "Purchase order left pending by auto-approval",
                po_id=po.po_id,
                reason_code=decision.reason_code,
            )
            stream.emit(
                "AutoApprovalDeclined",
                AutoApprovalDeclined(
                    po_id=po.po_id,
                    reason_code=decision.reason_code,
                    note=decision.note or "",
                    evaluated_at=stream.now,
                ),
            )

        return stream.events, decision

    def handle_transition(
        self,
        command: TransitionPurchaseOrder,
        command_id: str,
        actor: Actor,
        po: PurchaseOrder,
        txn: LedgerTransaction,
        linked_receipt_count: int = 0,
    ) -> list[Event]:
        """
        Handle TransitionPurchaseOrder for every edge except submit

        Submit goes through handle_submit because it may auto-approve.

        Raises:
            InvalidTransition, NoteRequired, SelfApprovalForbidden,
            OverrideNotPermitted, InsufficientBudget, InvariantViolation,
            ValidationError
        """
        action = validate_transition(po, command.new_status)
        validate_note(po, command.new_status, command.note)
        note = command.note.strip() if command.note and command.note.strip() else None

        if action == TransitionAction.SUBMIT:
            raise ValueError("Use handle_submit for DRAFT -> PENDING_APPROVAL")

        stream = _POStream(po, command_id, actor.actor_id, self.time_provider.now())

        if action == TransitionAction.APPROVE:
            validate_not_self_approval(po, actor, self.policy)
            if command.override:
                validate_override_permitted(actor, self.policy)
            validate_has_line_items(po)
            validate_line_amounts(po)
            self._approve(stream, po, txn, actor, note=note, auto=False, override=command.override)

        elif action == TransitionAction.REJECT:
            stream.emit(
                "PurchaseOrderRejected",
                PurchaseOrderRejected(
                    po_id=po.po_id, rejected_by=actor.actor_id, rejected_at=stream.now, note=note
                ),
            )

        elif action == TransitionAction.CANCEL:
            stream.emit(
                "PurchaseOrderCancelled",
                PurchaseOrderCancelled(
                    po_id=po.po_id,
                    from_status=po.status,
                    cancelled_by=actor.actor_id,
                    cancelled_at=stream.now,
                    note=note,
                ),
            )

        elif action == TransitionAction.REVISE:
            stream.emit(
                "PurchaseOrderRevised",
                PurchaseOrderRevised(
                    po_id=po.po_id, revised_by=actor.actor_id, revised_at=stream.now, note=note
                ),
            )

        elif action == TransitionAction.COMPLETE:
            validate_receipt_for_completion(po, linked_receipt_count, self.policy)
            validate_line_amounts(po)
            for line in po.line_items:
                txn.realize(line.budget_item_id, line.amount, line.line_item_id, po_id=po.po_id)
            stream.emit(
                "PurchaseOrderCompleted",
                PurchaseOrderCompleted(
                    po_id=po.po_id,
                    total=po.total,
                    completed_by=actor.actor_id,
                    completed_at=stream.now,
                    note=note,
                ),
            )

        elif action == TransitionAction.VOID:
            for line in po.line_items:
                if po.status == POStatus.APPROVED:
                    txn.release(line.budget_item_id, line.amount, line.line_item_id, po_id=po.po_id)
                else:
                    txn.reverse_realization(
                        line.budget_item_id, line.amount, line.line_item_id, po_id=po.po_id
                    )
            stream.emit(
                "PurchaseOrderVoided",
                PurchaseOrderVoided(
                    po_id=po.po_id,
                    from_status=po.status,
                    total=po.total,
                    voided_by=actor.actor_id,
                    voided_at=stream.now,
                    note=note,
                ),
            )

        return stream.events

    def _approve(
        self,
        stream: _POStream,
        po: PurchaseOrder,
        txn: LedgerTransaction,
        approver: Actor,
        *,
        note: str | None,
        auto: bool,
        override: bool,
    ) -> None:
        """Reserve every line, then record the approval"""
        for line in po.line_items:
            txn.reserve(
                line.budget_item_id,
                line.amount,
                line.line_item_id,
                po_id=po.po_id,
                allow_over_budget=override,
            )
        stream.emit(
            "PurchaseOrderApproved",
            PurchaseOrderApproved(
                po_id=po.po_id,
                total=po.total,
                approved_by=approver.actor_id,
                approved_at=stream.now,
                note=note,
                auto_approved=auto,
                over_budget_override=override and any(
                    txn.item(i).available < 0 for i in po.budget_item_ids()
                ),
            ),
        )
