"""
ProcurementEngine - Main façade

The primary interface to the budget ledger and purchase order lifecycle.
It hides event sourcing, projections, locking and handlers behind plain
method calls.

Every write follows the same path:
1. Validate the request shape (pydantic command)
2. Take the resource locks (PO first, then budget items in id order)
3. Run handlers against the projections; ledger effects collect in a
   LedgerTransaction
4. Append all events of the request in one SQLite transaction
5. Apply them to the projections, then publish them on the bus

If anything fails before step 4 nothing was written. If step 4 fails
nothing was written either.

Example:
    >>> from procurement_ledger import ProcurementEngine
    >>> from procurement_ledger.kernel.identity import Actor
    >>> engine = ProcurementEngine("ledger.db")
    >>> alice = Actor(actor_id="alice", display_name="Alice", role="USER")
    >>> item = engine.create_budget_item("5100", "Office supplies", 2025, "1000.00", alice)
    >>> po = engine.create_po("Staples", alice, line_items=[
    ...     {"description": "Paper", "amount": "400.00", "budget_item_id": item.budget_item_id}])
    >>> engine.submit_po(po.po_id, alice)
"""

import threading
import time
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from procurement_ledger.amendments.commands import ApplyDecrease, ApplyIncrease, ApplyTransfer
from procurement_ledger.amendments.handlers import AmendmentHandlers
from procurement_ledger.amendments.models import AmendmentResult, AmendmentType, BudgetAmendment
from procurement_ledger.amendments.projections import AmendmentLog
from procurement_ledger.kernel.bus import EventHandler, InProcessBus
from procurement_ledger.kernel.errors import (
    AmendmentNotFound,
    BudgetItemNotFound,
    InsufficientBudget,
    PurchaseOrderNotFound,
    ReceiptNotFound,
    ValidationError,
)
from procurement_ledger.kernel.event_store import SQLiteEventStore
from procurement_ledger.kernel.events import Event
from procurement_ledger.kernel.identity import Actor
from procurement_ledger.kernel.ids import generate_id
from procurement_ledger.kernel.locks import (
    LockManager,
    budget_item_key,
    purchase_order_key,
    receipt_key,
)
from procurement_ledger.kernel.logging import LogOperation, get_logger
from procurement_ledger.kernel.metrics import (
    amendments_total,
    insufficient_budget_total,
    po_transitions_total,
    projection_rebuild_duration_seconds,
    receipt_links_total,
    record_ledger_commit,
    track_command_duration,
    update_budget_utilization,
)
from procurement_ledger.kernel.pagination import Page, paginate, resolve_page_params
from procurement_ledger.kernel.policy import ProcurementPolicy
from procurement_ledger.kernel.retry import retry_projection_rebuild
from procurement_ledger.kernel.time import RealTimeProvider, TimeProvider
from procurement_ledger.ledger.commands import CreateBudgetItem, DeleteBudgetItem
from procurement_ledger.ledger.handlers import BudgetLedgerHandlers, LedgerTransaction
from procurement_ledger.ledger.models import BudgetItem, LedgerDiscrepancy
from procurement_ledger.ledger.projections import BudgetItemRegistry
from procurement_ledger.ledger.triggers import detect_ledger_drift, evaluate_threshold_approach
from procurement_ledger.purchasing.commands import (
    CreatePurchaseOrder,
    SaveLineItems,
    TransitionPurchaseOrder,
    UpdatePurchaseOrderDetails,
)
from procurement_ledger.purchasing.handlers import PurchaseOrderHandlers
from procurement_ledger.purchasing.invariants import validate_po_exists
from procurement_ledger.purchasing.models import POStatus, PurchaseOrder
from procurement_ledger.purchasing.projections import PurchaseOrderRegistry
from procurement_ledger.reconciliation.commands import (
    LinkReceipt,
    RecordReceipt,
    UnlinkReceipt,
    UpdateReceiptStatus,
)
from procurement_ledger.reconciliation.handlers import (
    ReconciliationHandlers,
    amount_mismatch_warning,
    validate_receipt_exists,
)
from procurement_ledger.reconciliation.matching import (
    MATCHABLE_PO_STATUSES,
    suggest_pos_for_receipt,
    suggest_receipts_for_po,
)
from procurement_ledger.reconciliation.models import (
    LinkResult,
    MatchSuggestion,
    Receipt,
    ReceiptStatus,
    ReconciliationSummary,
)
from procurement_ledger.reconciliation.projections import ReceiptRegistry
from procurement_ledger.reconciliation.summary import (
    compute_reconciliation_summary,
    receipted_total,
)

logger = get_logger(__name__)

C = TypeVar("C", bound=BaseModel)

_PO_SEQUENCE_LOCK = "po_sequence"
_BUDGET_CODE_LOCK = "budget_item_codes"


def _build_command(command_type: type[C], **data: Any) -> C:
    """Validate request data, reporting the first problem as a domain ValidationError"""
    try:
        return command_type(**data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        message = first["msg"].removeprefix("Value error, ")
        raise ValidationError(f"{field}: {message}" if field else message, field=field) from e


class ProcurementEngine:
    """
    Procurement ledger façade

    Provides a unified API for:
    - Budget items (create, delete, query)
    - Amendments (increase, decrease, transfer, audit log)
    - Purchase orders (drafting, lifecycle transitions, auto-approval)
    - Receipts (intake, linking, coverage, match suggestions)
    - Ledger consistency checks
    """

    def __init__(
        self,
        sqlite_path: str | Path,
        policy: ProcurementPolicy | None = None,
        time_provider: TimeProvider | None = None,
        bus: InProcessBus | None = None,
    ) -> None:
        """
        Initialize the engine

        Args:
            sqlite_path: Path to SQLite database (created if missing)
            policy: Procurement policy (defaults if None)
            time_provider: Time provider (system clock if None)
            bus: Notification bus (a fresh in-process bus if None)
        """
        self.sqlite_path = Path(sqlite_path)
        self.policy = policy or ProcurementPolicy()
        self.time_provider = time_provider or RealTimeProvider()
        self.bus = bus or InProcessBus()

        # Infrastructure
        self.event_store = SQLiteEventStore(self.sqlite_path)
        self.locks = LockManager(self.policy.lock_timeout_seconds)
        self._projection_lock = threading.RLock()

        # Handlers
        self.ledger_handlers = BudgetLedgerHandlers(self.time_provider, self.policy)
        self.amendment_handlers = AmendmentHandlers(self.time_provider, self.policy)
        self.po_handlers = PurchaseOrderHandlers(self.time_provider, self.policy)
        self.receipt_handlers = ReconciliationHandlers(self.time_provider)

        # Projections
        self.budget_item_registry = BudgetItemRegistry()
        self.amendment_log = AmendmentLog()
        self.po_registry = PurchaseOrderRegistry()
        self.receipt_registry = ReceiptRegistry()

        self._rebuild_projections()

    # ========== Event Plumbing ==========

    @retry_projection_rebuild()
    def _rebuild_projections(self) -> None:
        """Replay the whole event log into fresh projections"""
        start = time.perf_counter()
        self.budget_item_registry = BudgetItemRegistry()
        self.amendment_log = AmendmentLog()
        self.po_registry = PurchaseOrderRegistry()
        self.receipt_registry = ReceiptRegistry()

        events = self.event_store.load_all_events()
        with self._projection_lock:
            for event in events:
                self._apply(event)

        duration = time.perf_counter() - start
        projection_rebuild_duration_seconds.observe(duration)
        logger.info(
            "Projections rebuilt",
            event_count=len(events),
            duration_ms=round(duration * 1000, 2),
        )

    def _apply(self, event: Event) -> None:
        if event.stream_type == "budget_item":
            self.budget_item_registry.apply_event(event)
        elif event.stream_type == "amendment":
            self.amendment_log.apply_event(event)
        elif event.stream_type == "purchase_order":
            self.po_registry.apply_event(event)
        elif event.stream_type == "receipt":
            self.receipt_registry.apply_event(event)
            self.po_registry.apply_event(event)

    def _commit(self, events: list[Event], txn: LedgerTransaction | None = None) -> list[Event]:
        """
        Append one request's events atomically, then project and publish

        Args:
            events: Domain events of the request (the txn's events included)
            txn: The ledger transaction, for threshold notifications

        Returns:
            The stored events
        """
        if not events:
            return []

        stored = self.event_store.append_batch(events)

        with self._projection_lock:
            touched = txn.touched_items if txn is not None else {}
            before = {
                budget_item_id: self.budget_item_registry.budget_items[budget_item_id].model_copy(
                    deep=True
                )
                for budget_item_id in touched
            }
            # An idempotent replay returns events the projections already hold
            fresh = stored[0].event_id == events[0].event_id
            if fresh:
                for event in stored:
                    self._apply(event)
            after = {
                budget_item_id: self.budget_item_registry.budget_items[budget_item_id]
                for budget_item_id in touched
            }

        if fresh:
            record_ledger_commit(
                [event.event_type for event in stored],
                len(txn.warnings) if txn is not None else 0,
            )
        for item in after.values():
            update_budget_utilization(item.code, item.budget_amount, item.committed)

        notifications = evaluate_threshold_approach(
            before,
            after,
            self.policy.threshold_warning_ratio,
            self.time_provider.now(),
            events[0].command_id,
        )
        self.bus.publish_events(stored)
        self.bus.publish_events(notifications)
        return stored

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """
        Register a notification handler

        Args:
            event_type: e.g. "PurchaseOrderApproved", "BudgetThresholdApproached",
                or "*" for everything
            handler: Called after commit; its failures are logged, never raised
        """
        self.bus.subscribe(event_type, handler)

    def _page(self, rows: list, page: int | None, limit: int | None) -> Page:
        page, limit = resolve_page_params(
            page, limit, self.policy.default_page_size, self.policy.max_page_size
        )
        return paginate(rows, page, limit)

    # ========== Budget Items ==========

    @track_command_duration("create_budget_item")
    def create_budget_item(
        self,
        code: str,
        description: str,
        fiscal_year: int,
        budget_amount: Decimal | str | int,
        actor: Actor,
        category: str | None = None,
    ) -> BudgetItem:
        """
        Create a budget item

        Raises:
            ValidationError: Bad input
            DuplicateBudgetItemCode: Code already used by a live item
        """
        command = _build_command(
            CreateBudgetItem,
            code=code,
            description=description,
            fiscal_year=fiscal_year,
            budget_amount=budget_amount,
            category=category,
        )
        with LogOperation(logger, "create_budget_item", code=command.code, actor_id=actor.actor_id):
            with self.locks.hold([_BUDGET_CODE_LOCK]):
                with self._projection_lock:
                    events = self.ledger_handlers.handle_create_budget_item(
                        command, generate_id(), actor.actor_id, self.budget_item_registry.budget_items
                    )
                self._commit(events)
        return self.budget_item_registry.budget_items[events[0].stream_id]

    @track_command_duration("delete_budget_item")
    def delete_budget_item(self, budget_item_id: str, actor: Actor) -> None:
        """
        Delete a budget item nothing open refers to

        Raises:
            BudgetItemNotFound: Unknown or already deleted
            BudgetItemInUse: A non-cancelled PO has a line on it
        """
        command = _build_command(DeleteBudgetItem, budget_item_id=budget_item_id)
        with LogOperation(
            logger, "delete_budget_item", budget_item_id=budget_item_id, actor_id=actor.actor_id
        ):
            with self.locks.hold([_BUDGET_CODE_LOCK]), self.locks.hold(
                [budget_item_key(budget_item_id)]
            ):
                with self._projection_lock:
                    events = self.ledger_handlers.handle_delete_budget_item(
                        command,
                        generate_id(),
                        actor.actor_id,
                        self.budget_item_registry.budget_items,
                        self.po_registry.open_po_numbers_for_budget_item(budget_item_id),
                    )
                self._commit(events)

    def get_budget_item(self, budget_item_id: str) -> BudgetItem:
        """
        Raises:
            BudgetItemNotFound
        """
        item = self.budget_item_registry.get(budget_item_id)
        if item is None:
            raise BudgetItemNotFound(budget_item_id)
        return item

    def get_budget_item_by_code(self, code: str) -> BudgetItem:
        with self._projection_lock:
            item = self.budget_item_registry.get_by_code(code)
        if item is None:
            raise BudgetItemNotFound(code)
        return item

    def list_budget_items(
        self,
        fiscal_year: int | None = None,
        over_budget_only: bool = False,
        page: int | None = None,
        limit: int | None = None,
    ) -> Page[BudgetItem]:
        """Live budget items ordered by code"""
        with self._projection_lock:
            if over_budget_only:
                rows = self.budget_item_registry.list_over_budget(fiscal_year)
            else:
                rows = self.budget_item_registry.list_live(fiscal_year)
        return self._page(rows, page, limit)

    # ========== Amendments ==========

    def _amend(
        self,
        operation: str,
        budget_item_ids: list[str],
        actor: Actor,
        handle,
        command: BaseModel,
    ) -> AmendmentResult:
        command_id = generate_id()
        with LogOperation(logger, operation, actor_id=actor.actor_id, budget_item_ids=budget_item_ids):
            with self.locks.hold(budget_item_key(i) for i in budget_item_ids):
                with self._projection_lock:
                    txn = self.ledger_handlers.begin(
                        self.budget_item_registry.budget_items, command_id, actor.actor_id
                    )
                    events = handle(command, command_id, actor.actor_id, txn)
                self._commit(events + txn.events, txn)

        amendments: list[BudgetAmendment] = []
        for event in events:
            if event.event_type == "BudgetTransferRecorded":
                ids = [event.payload["out_amendment_id"], event.payload["in_amendment_id"]]
            else:
                ids = [event.payload["amendment_id"]]
            amendments.extend(self.amendment_log.amendments[i] for i in ids)
        for amendment in amendments:
            amendments_total.labels(amendment_type=amendment.amendment_type.value).inc()
        return AmendmentResult(amendments=amendments, warnings=list(txn.warnings))

    @track_command_duration("apply_increase")
    def apply_increase(
        self, budget_item_id: str, amount: Decimal | str | int, reason: str, actor: Actor
    ) -> AmendmentResult:
        """
        Raise a budget item's ceiling

        Raises:
            ValidationError: amount <= 0 or blank reason
            BudgetItemNotFound
        """
        command = _build_command(
            ApplyIncrease, budget_item_id=budget_item_id, amount=amount, reason=reason
        )
        return self._amend(
            "apply_increase", [budget_item_id], actor,
            self.amendment_handlers.handle_increase, command,
        )

    @track_command_duration("apply_decrease")
    def apply_decrease(
        self, budget_item_id: str, amount: Decimal | str | int, reason: str, actor: Actor
    ) -> AmendmentResult:
        """
        Lower a budget item's ceiling

        Going below commitments is allowed and comes back as a
        NowOverBudget warning on the result.

        Raises:
            ValidationError: amount <= 0, blank reason, or negative ceiling
            BudgetItemNotFound
        """
        command = _build_command(
            ApplyDecrease, budget_item_id=budget_item_id, amount=amount, reason=reason
        )
        return self._amend(
            "apply_decrease", [budget_item_id], actor,
            self.amendment_handlers.handle_decrease, command,
        )

    @track_command_duration("apply_transfer")
    def apply_transfer(
        self,
        from_budget_item_id: str,
        to_budget_item_id: str,
        amount: Decimal | str | int,
        reason: str,
        actor: Actor,
    ) -> AmendmentResult:
        """
        Move ceiling between two budget items of the same fiscal year

        Both amendment rows and both ceiling changes commit together.

        Raises:
            ValidationError: Bad input, same item, different fiscal years,
                or the source ceiling would go negative
            BudgetItemNotFound
        """
        command = _build_command(
            ApplyTransfer,
            from_budget_item_id=from_budget_item_id,
            to_budget_item_id=to_budget_item_id,
            amount=amount,
            reason=reason,
        )
        return self._amend(
            "apply_transfer",
            [from_budget_item_id, to_budget_item_id],
            actor,
            self.amendment_handlers.handle_transfer,
            command,
        )

    def create_amendment(
        self,
        amendment_type: AmendmentType | str,
        budget_item_id: str,
        amount: Decimal | str | int,
        reason: str,
        actor: Actor,
        to_budget_item_id: str | None = None,
    ) -> AmendmentResult:
        """
        Create an amendment of any type

        TRANSFER_OUT moves money from budget_item_id to to_budget_item_id.
        TRANSFER_IN moves it the other way: into budget_item_id from
        to_budget_item_id.

        Raises:
            ValidationError: Unknown type, missing destination, bad input
        """
        try:
            amendment_type = AmendmentType(amendment_type)
        except ValueError as e:
            raise ValidationError(
                f"Invalid amendment type: {amendment_type}", field="amendment_type"
            ) from e

        if amendment_type == AmendmentType.INCREASE:
            return self.apply_increase(budget_item_id, amount, reason, actor)
        if amendment_type == AmendmentType.DECREASE:
            return self.apply_decrease(budget_item_id, amount, reason, actor)
        if not to_budget_item_id:
            raise ValidationError(
                "Destination budget item is required for transfers", field="to_budget_item_id"
            )
        if amendment_type == AmendmentType.TRANSFER_OUT:
            return self.apply_transfer(budget_item_id, to_budget_item_id, amount, reason, actor)
        return self.apply_transfer(to_budget_item_id, budget_item_id, amount, reason, actor)

    def list_amendments(
        self,
        amendment_type: AmendmentType | str | None = None,
        fiscal_year: int | None = None,
        budget_item_id: str | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> Page[BudgetAmendment]:
        """Amendment log, newest first"""
        if amendment_type is not None:
            try:
                amendment_type = AmendmentType(amendment_type)
            except ValueError as e:
                raise ValidationError(
                    f"Invalid amendment type: {amendment_type}", field="amendment_type"
                ) from e
        with self._projection_lock:
            rows = self.amendment_log.list_filtered(amendment_type, fiscal_year, budget_item_id)
        return self._page(rows, page, limit)

    def get_amendment(self, amendment_id: str) -> BudgetAmendment:
        amendment = self.amendment_log.get(amendment_id)
        if amendment is None:
            raise AmendmentNotFound(amendment_id)
        return amendment

    # ========== Purchase Orders ==========

    @track_command_duration("create_po")
    def create_po(
        self,
        vendor_name: str,
        actor: Actor,
        *,
        line_items: list[dict[str, Any]] | None = None,
        vendor_id: str | None = None,
        department: str | None = None,
        notes: str | None = None,
        po_date: date | None = None,
    ) -> PurchaseOrder:
        """
        Open a DRAFT purchase order

        Args:
            vendor_name: Who is being paid
            actor: Requester
            line_items: [{description, amount, budget_item_id}, ...]

        Raises:
            ValidationError: Bad input
            BudgetItemNotFound: A line references an unknown budget item
        """
        command = _build_command(
            CreatePurchaseOrder,
            vendor_name=vendor_name,
            vendor_id=vendor_id,
            department=department,
            notes=notes,
            po_date=po_date or self.time_provider.today(),
            line_items=line_items or [],
        )
        budget_item_ids = [line.budget_item_id for line in command.line_items]
        with LogOperation(logger, "create_po", actor_id=actor.actor_id, line_count=len(budget_item_ids)):
            with self.locks.hold([_PO_SEQUENCE_LOCK]), self.locks.hold(
                budget_item_key(i) for i in budget_item_ids
            ):
                with self._projection_lock:
                    po_number = self.po_registry.next_po_number(
                        self.policy.po_number_prefix,
                        self.time_provider.today().year,
                        self.policy.po_number_reset_yearly,
                    )
                    events = self.po_handlers.handle_create_purchase_order(
                        command,
                        generate_id(),
                        actor,
                        self.budget_item_registry.budget_items,
                        po_number,
                    )
                self._commit(events)
        return self.po_registry.purchase_orders[events[0].stream_id]

    @track_command_duration("save_line_items")
    def save_line_items(
        self, po_id: str, line_items: list[dict[str, Any]], actor: Actor
    ) -> PurchaseOrder:
        """
        Replace the line items of a DRAFT purchase order

        Raises:
            NotEditable: PO is not DRAFT
            PurchaseOrderNotFound, BudgetItemNotFound, ValidationError
        """
        command = _build_command(SaveLineItems, po_id=po_id, line_items=line_items)
        with LogOperation(logger, "save_line_items", po_id=po_id, actor_id=actor.actor_id):
            with self.locks.hold([purchase_order_key(po_id)]), self.locks.hold(
                budget_item_key(line.budget_item_id) for line in command.line_items
            ):
                with self._projection_lock:
                    po = validate_po_exists(po_id, self.po_registry.purchase_orders)
                    events = self.po_handlers.handle_save_line_items(
                        command, generate_id(), actor, po, self.budget_item_registry.budget_items
                    )
                self._commit(events)
        return self.po_registry.purchase_orders[po_id]

    @track_command_duration("update_po_details")
    def update_po_details(self, po_id: str, actor: Actor, **changes: Any) -> PurchaseOrder:
        """
        Change header fields of a DRAFT PO

        Accepted keys: vendor_name, vendor_id, department, po_date, notes.

        Raises:
            NotEditable, PurchaseOrderNotFound, ValidationError
        """
        command = _build_command(UpdatePurchaseOrderDetails, po_id=po_id, **changes)
        with LogOperation(logger, "update_po_details", po_id=po_id, actor_id=actor.actor_id):
            with self.locks.hold([purchase_order_key(po_id)]):
                with self._projection_lock:
                    po = validate_po_exists(po_id, self.po_registry.purchase_orders)
                    events = self.po_handlers.handle_update_details(
                        command, generate_id(), actor, po
                    )
                self._commit(events)
        return self.po_registry.purchase_orders[po_id]

    @track_command_duration("submit_po")
    def submit_po(self, po_id: str, actor: Actor) -> PurchaseOrder:
        """
        DRAFT -> PENDING_APPROVAL, auto-approving when the policy allows

        Returns:
            The PO: APPROVED if auto-approved, otherwise PENDING_APPROVAL
            (with auto_approval_note set when the evaluator declined)

        Raises:
            InvalidTransition: PO is not DRAFT
            ValidationError: PO has no line items
            ConcurrencyTimeout: Budget item locks not acquired in time
        """
        command_id = generate_id()
        with LogOperation(logger, "submit_po", po_id=po_id, actor_id=actor.actor_id):
            with self.locks.hold([purchase_order_key(po_id)]):
                po = validate_po_exists(po_id, self.po_registry.purchase_orders)
                with self.locks.hold(budget_item_key(i) for i in po.budget_item_ids()):
                    with self._projection_lock:
                        txn = self.ledger_handlers.begin(
                            self.budget_item_registry.budget_items, command_id, actor.actor_id
                        )
                        events, decision = self.po_handlers.handle_submit(
                            command_id, actor, po, txn
                        )
                    self._commit(events + txn.events, txn)

        po_transitions_total.labels(
            from_status=POStatus.DRAFT.value, to_status=POStatus.PENDING_APPROVAL.value
        ).inc()
        if decision.approved:
            po_transitions_total.labels(
                from_status=POStatus.PENDING_APPROVAL.value, to_status=POStatus.APPROVED.value
            ).inc()
        return self._with_warnings(po_id, txn)

    @track_command_duration("transition_po")
    def transition_po(
        self,
        po_id: str,
        new_status: POStatus | str,
        actor: Actor,
        note: str | None = None,
        override: bool = False,
    ) -> PurchaseOrder:
        """
        Move a purchase order along the state machine

        The transition and all of its budget effects commit together; on
        any error the PO and every budget item are unchanged.

        Args:
            po_id: Purchase order
            new_status: Target status
            actor: Who is acting (role matters for override)
            note: Required for reject, void, and cancel from PENDING_APPROVAL
            override: Approve even if a budget item goes over budget

        Returns:
            The PO; `warnings` holds a NowOverBudget per budget item an
            override approval left over budget

        Raises:
            InvalidTransition, NoteRequired, InsufficientBudget,
            SelfApprovalForbidden, OverrideNotPermitted, InvariantViolation,
            ConcurrencyTimeout, PurchaseOrderNotFound
        """
        if isinstance(new_status, str):
            new_status = new_status.strip().upper()
        command = _build_command(
            TransitionPurchaseOrder, po_id=po_id, new_status=new_status, note=note, override=override
        )
        if command.new_status == POStatus.PENDING_APPROVAL:
            return self.submit_po(po_id, actor)

        command_id = generate_id()
        with LogOperation(
            logger,
            "transition_po",
            po_id=po_id,
            new_status=command.new_status.value,
            actor_id=actor.actor_id,
        ):
            with self.locks.hold([purchase_order_key(po_id)]):
                po = validate_po_exists(po_id, self.po_registry.purchase_orders)
                from_status = po.status
                with self.locks.hold(budget_item_key(i) for i in po.budget_item_ids()):
                    with self._projection_lock:
                        txn = self.ledger_handlers.begin(
                            self.budget_item_registry.budget_items, command_id, actor.actor_id
                        )
                        try:
                            events = self.po_handlers.handle_transition(
                                command,
                                command_id,
                                actor,
                                po,
                                txn,
                                linked_receipt_count=len(self.receipt_registry.for_po(po_id)),
                            )
                        except InsufficientBudget:
                            insufficient_budget_total.inc()
                            raise
                    self._commit(events + txn.events, txn)

        po_transitions_total.labels(
            from_status=from_status.value, to_status=command.new_status.value
        ).inc()
        return self._with_warnings(po_id, txn)

    def _with_warnings(self, po_id: str, txn: LedgerTransaction) -> PurchaseOrder:
        """Copy of the projected PO carrying the transition's NowOverBudget warnings"""
        po = self.po_registry.purchase_orders[po_id]
        return po.model_copy(update={"warnings": list(txn.warnings)}, deep=True)

    def get_po(self, po_id: str) -> PurchaseOrder:
        po = self.po_registry.get(po_id)
        if po is None:
            raise PurchaseOrderNotFound(po_id)
        return po

    def list_pos(
        self,
        status: str | list[str] | None = None,
        department: str | None = None,
        requester_id: str | None = None,
        vendor: str | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> Page[PurchaseOrder]:
        """
        Purchase orders, newest first

        Args:
            status: One status, a comma-separated list, or a list
        """
        statuses = None
        if status:
            raw = status.split(",") if isinstance(status, str) else status
            try:
                statuses = [POStatus(s.strip().upper()) for s in raw if s.strip()]
            except ValueError as e:
                raise ValidationError(f"Invalid status filter: {status}", field="status") from e
        with self._projection_lock:
            rows = self.po_registry.list_filtered(statuses, department, requester_id, vendor)
        return self._page(rows, page, limit)

    # ========== Receipts & Reconciliation ==========

    @track_command_duration("record_receipt")
    def record_receipt(
        self,
        actor: Actor | None = None,
        *,
        total_amount: Decimal | str | int | None = None,
        currency: str = "USD",
        status: ReceiptStatus | str = ReceiptStatus.PENDING,
        vendor_id: str | None = None,
        merchant_name: str | None = None,
        receipt_date: date | None = None,
        file_ref: str | None = None,
    ) -> Receipt:
        """Register a receipt stored by the host application"""
        command = _build_command(
            RecordReceipt,
            total_amount=total_amount,
            currency=currency,
            status=status,
            vendor_id=vendor_id,
            merchant_name=merchant_name,
            receipt_date=receipt_date,
            file_ref=file_ref,
        )
        actor_id = actor.actor_id if actor else None
        events = self.receipt_handlers.handle_record_receipt(command, generate_id(), actor_id)
        self._commit(events)
        return self.receipt_registry.receipts[events[0].stream_id]

    @track_command_duration("update_receipt_status")
    def update_receipt_status(
        self,
        receipt_id: str,
        status: ReceiptStatus | str,
        actor: Actor | None = None,
        total_amount: Decimal | str | int | None = None,
    ) -> Receipt:
        """
        Record a processing status change (and the extracted amount, if any)

        Raises:
            ReceiptNotFound, ValidationError
        """
        command = _build_command(
            UpdateReceiptStatus, receipt_id=receipt_id, status=status, total_amount=total_amount
        )
        with self.locks.hold([receipt_key(receipt_id)]):
            with self._projection_lock:
                events = self.receipt_handlers.handle_update_status(
                    command,
                    generate_id(),
                    actor.actor_id if actor else None,
                    self.receipt_registry.receipts,
                )
            self._commit(events)
        return self.receipt_registry.receipts[receipt_id]

    def get_receipt(self, receipt_id: str) -> Receipt:
        receipt = self.receipt_registry.get(receipt_id)
        if receipt is None:
            raise ReceiptNotFound(receipt_id)
        return receipt

    @track_command_duration("link_receipt")
    def link_receipt(self, receipt_id: str, po_id: str, actor: Actor) -> LinkResult:
        """
        Link a receipt to a purchase order

        Metadata only: no budget item changes. A receipt/PO amount
        difference above one cent comes back as a warning.

        Raises:
            ReceiptNotFound, PurchaseOrderNotFound
        """
        command = _build_command(LinkReceipt, receipt_id=receipt_id, po_id=po_id)
        with LogOperation(
            logger, "link_receipt", receipt_id=receipt_id, po_id=po_id, actor_id=actor.actor_id
        ):
            with self.locks.hold([receipt_key(receipt_id)]):
                with self._projection_lock:
                    po = self.get_po(po_id)
                    events = self.receipt_handlers.handle_link(
                        command,
                        generate_id(),
                        actor.actor_id,
                        self.receipt_registry.receipts,
                        po,
                    )
                self._commit(events)

        receipt = self.receipt_registry.receipts[receipt_id]
        warning = amount_mismatch_warning(receipt, po)
        if warning:
            logger.warning("Receipt amount differs from PO total", receipt_id=receipt_id, po_id=po_id)
        receipt_links_total.labels(action="link").inc()
        return LinkResult(receipt=receipt, amount_warning=warning)

    @track_command_duration("unlink_receipt")
    def unlink_receipt(self, receipt_id: str, actor: Actor) -> Receipt:
        """
        Raises:
            ReceiptNotFound, ReceiptNotLinked
        """
        command = _build_command(UnlinkReceipt, receipt_id=receipt_id)
        with LogOperation(logger, "unlink_receipt", receipt_id=receipt_id, actor_id=actor.actor_id):
            with self.locks.hold([receipt_key(receipt_id)]):
                with self._projection_lock:
                    events = self.receipt_handlers.handle_unlink(
                        command, generate_id(), actor.actor_id, self.receipt_registry.receipts
                    )
                self._commit(events)
        receipt_links_total.labels(action="unlink").inc()
        return self.receipt_registry.receipts[receipt_id]

    def get_reconciliation_summary(self, po_id: str) -> ReconciliationSummary:
        """
        Receipt coverage of a PO (read-only)

        Raises:
            PurchaseOrderNotFound
        """
        with self._projection_lock:
            po = self.get_po(po_id)
            receipts = self.receipt_registry.for_po(po_id)
        return compute_reconciliation_summary(po, receipts)

    def suggest_pos_for_receipt(self, receipt_id: str) -> list[MatchSuggestion]:
        """
        Rank APPROVED / COMPLETED POs that this receipt may belong to

        Raises:
            ReceiptNotFound
        """
        with self._projection_lock:
            receipt = validate_receipt_exists(receipt_id, self.receipt_registry.receipts)
            candidates = self.po_registry.list_by_statuses(list(MATCHABLE_PO_STATUSES))
        return suggest_pos_for_receipt(receipt, candidates, self.policy)

    def suggest_receipts_for_po(self, po_id: str) -> list[MatchSuggestion]:
        """
        Rank unlinked receipts against a PO's unreceipted remainder

        Raises:
            PurchaseOrderNotFound
        """
        with self._projection_lock:
            po = self.get_po(po_id)
            so_far = receipted_total(self.receipt_registry.for_po(po_id))
            unlinked = self.receipt_registry.unlinked()
        return suggest_receipts_for_po(po, unlinked, so_far, self.policy)

    # ========== Consistency & Health ==========

    def check_ledger_consistency(self) -> list[LedgerDiscrepancy]:
        """
        Compare every budget item's balances with its purchase orders

        Returns:
            Discrepancies (empty when the ledger is sound)
        """
        with self._projection_lock:
            items = self.budget_item_registry.list_live()
            expected = self.po_registry.committed_by_budget_item()
        discrepancies = detect_ledger_drift(items, expected)
        if discrepancies:
            logger.critical(
                "Ledger drift detected",
                budget_item_codes=[d.code for d in discrepancies],
            )
        return discrepancies

    def health(self) -> dict[str, Any]:
        """Summary used by the health endpoint and `procure check`"""
        discrepancies = self.check_ledger_consistency()
        with self._projection_lock:
            over_budget = [item.code for item in self.budget_item_registry.list_over_budget()]
            open_pos = len(
                self.po_registry.list_filtered(
                    [POStatus.DRAFT, POStatus.PENDING_APPROVAL, POStatus.APPROVED]
                )
            )
        return {
            "ledger_consistent": not discrepancies,
            "discrepancies": [d.model_dump(mode="json") for d in discrepancies],
            "over_budget_items": over_budget,
            "open_purchase_orders": open_pos,
            "event_count": self.event_store.count_events(),
        }
