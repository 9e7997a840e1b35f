"""
Budget Ledger Handlers - Command→Event transformation and ledger transactions

Two kinds of work live here:
1. Administrative commands (create / delete budget item) turned into events.
2. LedgerTransaction: the unit of atomicity for balance changes. It copies
   each budget item it touches, applies reserve / release / realize /
   adjust on the copies and collects the events. Nothing is written; if any
   step raises, the caller drops the transaction and the ledger is exactly
   as it was.
"""

from decimal import Decimal

from pydantic import BaseModel

from procurement_ledger.kernel.errors import InvariantViolation
from procurement_ledger.kernel.events import Event, create_event
from procurement_ledger.kernel.ids import generate_id
from procurement_ledger.kernel.logging import get_logger
from procurement_ledger.kernel.policy import ProcurementPolicy
from procurement_ledger.kernel.time import TimeProvider
from procurement_ledger.ledger.commands import CreateBudgetItem, DeleteBudgetItem
from procurement_ledger.ledger.events import (
    STREAM_TYPE,
    AllocationAdjusted,
    BudgetItemCreated,
    BudgetItemDeleted,
    FundsRealized,
    FundsReleased,
    FundsReserved,
    RealizationReversed,
)
from procurement_ledger.ledger.invariants import (
    validate_balances_non_negative,
    validate_budget_item_exists,
    validate_can_realize,
    validate_can_reserve,
    validate_can_reverse_realization,
    validate_ceiling_non_negative,
    validate_code_unique,
    validate_not_in_use,
    validate_positive_amount,
)
from procurement_ledger.ledger.models import BudgetItem, NowOverBudget

logger = get_logger(__name__)


class LedgerTransaction:
    """
    In-memory working set for one request's ledger mutations

    The caller must hold the locks of every budget item it touches for the
    lifetime of the transaction.

    Usage:
        txn = LedgerTransaction(registry.budget_items, command_id=..., ...)
        txn.reserve(item_id, Decimal("400.00"), token=line_item_id, po_id=po_id)
        store.append_batch(po_events + txn.events)
    """

    def __init__(
        self,
        budget_items: dict[str, BudgetItem],
        *,
        command_id: str,
        actor_id: str | None,
        time_provider: TimeProvider,
    ) -> None:
        self._source = budget_items
        self._working: dict[str, BudgetItem] = {}
        self.command_id = command_id
        self.actor_id = actor_id
        self.time_provider = time_provider
        self.events: list[Event] = []
        self.warnings: list[NowOverBudget] = []

    def item(self, budget_item_id: str) -> BudgetItem:
        """Working copy of a budget item (copied on first touch)"""
        if budget_item_id not in self._working:
            source = validate_budget_item_exists(budget_item_id, self._source)
            self._working[budget_item_id] = source.model_copy(deep=True)
        return self._working[budget_item_id]

    @property
    def touched_items(self) -> dict[str, BudgetItem]:
        return dict(self._working)

    # ========== Ledger Operations ==========

    def reserve(
        self,
        budget_item_id: str,
        amount: Decimal,
        token: str,
        *,
        po_id: str | None = None,
        allow_over_budget: bool = False,
    ) -> bool:
        """
        Encumber `amount` on a budget item

        Args:
            budget_item_id: Target item
            amount: Positive amount
            token: Reservation token (PO line item id); a token already
                reserved or realized is a no-op
            po_id: Purchase order for the audit trail
            allow_over_budget: Authorized override of the available check

        Returns:
            True if applied, False if the token was already applied

        Raises:
            BudgetItemNotFound, ValidationError, InsufficientBudget
        """
        validate_positive_amount(amount)
        item = self.item(budget_item_id)
        if token in item.reservations or token in item.realizations:
            logger.info("Reservation token already applied", budget_item_id=budget_item_id)
            return False

        if not allow_over_budget:
            validate_can_reserve(item, amount)

        item.encumbered += amount
        item.reservations[token] = amount
        self._check(item)
        if allow_over_budget and item.available < 0:
            self._warn_over_budget(item, "Override reservation left budget item over budget")
        self._emit(
            item,
            "FundsReserved",
            FundsReserved(
                budget_item_id=budget_item_id,
                amount=amount,
                token=token,
                po_id=po_id,
                encumbered_after=item.encumbered,
                over_budget_override=allow_over_budget and item.available < 0,
            ),
        )
        return True

    def release(
        self,
        budget_item_id: str,
        amount: Decimal,
        token: str,
        *,
        po_id: str | None = None,
    ) -> bool:
        """
        Release an encumbrance, flooring at zero

        A token with no live reservation is a no-op. Releasing more than is
        encumbered clamps to zero and logs a warning.

        Returns:
            True if applied, False if nothing was reserved under `token`
        """
        validate_positive_amount(amount)
        item = self.item(budget_item_id)
        if token not in item.reservations:
            logger.info("No live reservation for token", budget_item_id=budget_item_id)
            return False

        floored = amount > item.encumbered
        if floored:
            logger.warning(
                "Release exceeds encumbered balance, flooring at zero",
                budget_item_id=budget_item_id,
                code=item.code,
                encumbered=str(item.encumbered),
                requested=str(amount),
            )
            item.encumbered = Decimal("0.00")
        else:
            item.encumbered -= amount
        del item.reservations[token]
        self._check(item)
        self._emit(
            item,
            "FundsReleased",
            FundsReleased(
                budget_item_id=budget_item_id,
                amount=amount,
                token=token,
                po_id=po_id,
                encumbered_after=item.encumbered,
                floored=floored,
            ),
        )
        return True

    def realize(
        self,
        budget_item_id: str,
        amount: Decimal,
        token: str,
        *,
        po_id: str | None = None,
    ) -> bool:
        """
        Move `amount` from encumbered to actual_spent

        Returns:
            True if applied, False if `token` was already realized

        Raises:
            InvariantViolation: amount > encumbered (logged at critical)
        """
        validate_positive_amount(amount)
        item = self.item(budget_item_id)
        if token in item.realizations:
            logger.info("Realization token already applied", budget_item_id=budget_item_id)
            return False

        self._guard(validate_can_realize, item, amount)
        item.encumbered -= amount
        item.actual_spent += amount
        item.reservations.pop(token, None)
        item.realizations[token] = amount
        self._check(item)
        self._emit(
            item,
            "FundsRealized",
            FundsRealized(
                budget_item_id=budget_item_id,
                amount=amount,
                token=token,
                po_id=po_id,
                encumbered_after=item.encumbered,
                actual_spent_after=item.actual_spent,
            ),
        )
        return True

    def reverse_realization(
        self,
        budget_item_id: str,
        amount: Decimal,
        token: str,
        *,
        po_id: str | None = None,
    ) -> bool:
        """
        Back out actual spend for a voided completed PO

        The encumbrance is not restored; the money returns to available.

        Returns:
            True if applied, False if nothing was realized under `token`
        """
        validate_positive_amount(amount)
        item = self.item(budget_item_id)
        if token not in item.realizations:
            logger.info("No realization for token", budget_item_id=budget_item_id)
            return False

        self._guard(validate_can_reverse_realization, item, amount)
        item.actual_spent -= amount
        del item.realizations[token]
        self._check(item)
        self._emit(
            item,
            "RealizationReversed",
            RealizationReversed(
                budget_item_id=budget_item_id,
                amount=amount,
                token=token,
                po_id=po_id,
                actual_spent_after=item.actual_spent,
            ),
        )
        return True

    def adjust_allocation(
        self,
        budget_item_id: str,
        delta: Decimal,
        *,
        amendment_id: str | None = None,
    ) -> NowOverBudget | None:
        """
        Move the ceiling by `delta` (positive or negative)

        Returns:
            NowOverBudget when a decrease leaves commitments above the
            ceiling, otherwise None

        Raises:
            ValidationError: The ceiling would go negative
        """
        item = self.item(budget_item_id)
        validate_ceiling_non_negative(item, delta)

        previous = item.budget_amount
        item.budget_amount = previous + delta

        warning = None
        if delta < 0 and item.available < 0:
            warning = self._warn_over_budget(
                item, "Allocation decrease left budget item over budget"
            )

        self._emit(
            item,
            "AllocationAdjusted",
            AllocationAdjusted(
                budget_item_id=budget_item_id,
                delta=delta,
                previous_amount=previous,
                new_amount=item.budget_amount,
                amendment_id=amendment_id,
                now_over_budget=warning is not None,
            ),
        )
        return warning

    # ========== Internal Helpers ==========

    def _warn_over_budget(self, item: BudgetItem, message: str) -> NowOverBudget:
        warning = NowOverBudget(
            budget_item_id=item.budget_item_id,
            code=item.code,
            budget_amount=item.budget_amount,
            committed=item.committed,
            available=item.available,
        )
        self.warnings.append(warning)
        logger.warning(
            message,
            budget_item_id=item.budget_item_id,
            code=item.code,
            available=str(item.available),
        )
        return warning

    def _guard(self, check, item: BudgetItem, amount: Decimal) -> None:
        try:
            check(item, amount)
        except InvariantViolation as e:
            logger.critical(
                "Ledger invariant violated",
                budget_item_id=item.budget_item_id,
                code=item.code,
                encumbered=str(item.encumbered),
                actual_spent=str(item.actual_spent),
                requested=str(amount),
                command_id=self.command_id,
                error=str(e),
            )
            raise

    def _check(self, item: BudgetItem) -> None:
        try:
            validate_balances_non_negative(item)
        except InvariantViolation as e:
            logger.critical(
                "Ledger invariant violated",
                budget_item_id=item.budget_item_id,
                command_id=self.command_id,
                error=str(e),
            )
            raise

    def _emit(self, item: BudgetItem, event_type: str, payload: BaseModel) -> None:
        item.version += 1
        self.events.append(
            create_event(
                event_id=generate_id(),
                stream_id=item.budget_item_id,
                stream_type=STREAM_TYPE,
                event_type=event_type,
                occurred_at=self.time_provider.now(),
                command_id=self.command_id,
                actor_id=self.actor_id,
                payload=payload.model_dump(mode="json"),
                version=item.version,
            )
        )


class BudgetLedgerHandlers:
    """
    Command handlers for budget item administration

    Handlers read projection state, check invariants and return events.
    They never write.
    """

    def __init__(self, time_provider: TimeProvider, policy: ProcurementPolicy) -> None:
        """
        Args:
            time_provider: For timestamps (injectable for testing)
            policy: Procurement configuration
        """
        self.time_provider = time_provider
        self.policy = policy

    def begin(
        self,
        budget_items: dict[str, BudgetItem],
        command_id: str,
        actor_id: str | None,
    ) -> LedgerTransaction:
        """Start a ledger transaction over the current projection state"""
        return LedgerTransaction(
            budget_items,
            command_id=command_id,
            actor_id=actor_id,
            time_provider=self.time_provider,
        )

    def handle_create_budget_item(
        self,
        command: CreateBudgetItem,
        command_id: str,
        actor_id: str | None,
        budget_items: dict[str, BudgetItem],
    ) -> list[Event]:
        """
        Handle CreateBudgetItem command

        Raises:
            DuplicateBudgetItemCode: Code already used by a live item
        """
        validate_code_unique(command.code, budget_items)
        now = self.time_provider.now()
        budget_item_id = generate_id()

        payload = BudgetItemCreated(
            budget_item_id=budget_item_id,
            code=command.code,
            description=command.description,
            category=command.category,
            fiscal_year=command.fiscal_year,
            budget_amount=command.budget_amount,
            created_at=now,
            created_by=actor_id,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=budget_item_id,
                stream_type=STREAM_TYPE,
                event_type="BudgetItemCreated",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=1,
            )
        ]

    def handle_delete_budget_item(
        self,
        command: DeleteBudgetItem,
        command_id: str,
        actor_id: str | None,
        budget_items: dict[str, BudgetItem],
        open_po_numbers: list[str],
    ) -> list[Event]:
        """
        Handle DeleteBudgetItem command

        Args:
            open_po_numbers: Numbers of non-terminal POs with a line on this item

        Raises:
            BudgetItemNotFound: Unknown or already deleted
            BudgetItemInUse: Referenced by an open PO
        """
        item = validate_budget_item_exists(command.budget_item_id, budget_items)
        validate_not_in_use(item, open_po_numbers)
        now = self.time_provider.now()

        payload = BudgetItemDeleted(
            budget_item_id=item.budget_item_id,
            code=item.code,
            deleted_at=now,
            deleted_by=actor_id,
        ).model_dump(mode="json")

        return [
            create_event(
                event_id=generate_id(),
                stream_id=item.budget_item_id,
                stream_type=STREAM_TYPE,
                event_type="BudgetItemDeleted",
                occurred_at=now,
                command_id=command_id,
                actor_id=actor_id,
                payload=payload,
                version=item.version + 1,
            )
        ]
