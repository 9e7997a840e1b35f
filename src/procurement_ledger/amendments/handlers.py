"""
Amendment Handlers - turn ceiling change requests into events

Every handler works through the caller's LedgerTransaction, so the
amendment record and the budget item change land in the same batch.
"""

from decimal import Decimal

from pydantic import BaseModel

from procurement_ledger.amendments.commands import ApplyDecrease, ApplyIncrease, ApplyTransfer
from procurement_ledger.amendments.events import (
    STREAM_TYPE,
    BudgetAmendmentRecorded,
    BudgetTransferRecorded,
)
from procurement_ledger.amendments.invariants import (
    validate_distinct_items,
    validate_same_fiscal_year,
)
from procurement_ledger.amendments.models import AmendmentType
from procurement_ledger.kernel.events import Event, create_event
from procurement_ledger.kernel.ids import generate_id
from procurement_ledger.kernel.policy import ProcurementPolicy
from procurement_ledger.kernel.time import TimeProvider
from procurement_ledger.ledger.handlers import LedgerTransaction


class AmendmentHandlers:
    """Command handlers for the amendment processor"""

    def __init__(self, time_provider: TimeProvider, policy: ProcurementPolicy) -> None:
        self.time_provider = time_provider
        self.policy = policy

    def handle_increase(
        self, command: ApplyIncrease, command_id: str, actor_id: str | None, txn: LedgerTransaction
    ) -> list[Event]:
        """
        Raise a ceiling by command.amount

        Raises:
            BudgetItemNotFound: Unknown item
        """
        return self._single(
            AmendmentType.INCREASE, command.budget_item_id, command.amount,
            command.reason, command_id, actor_id, txn,
        )

    def handle_decrease(
        self, command: ApplyDecrease, command_id: str, actor_id: str | None, txn: LedgerTransaction
    ) -> list[Event]:
        """
        Lower a ceiling by command.amount

        A NowOverBudget warning lands in txn.warnings when commitments end
        up above the new ceiling.

        Raises:
            BudgetItemNotFound: Unknown item
            ValidationError: The ceiling would go negative
        """
        return self._single(
            AmendmentType.DECREASE, command.budget_item_id, command.amount,
            command.reason, command_id, actor_id, txn,
        )

    def handle_transfer(
        self, command: ApplyTransfer, command_id: str, actor_id: str | None, txn: LedgerTransaction
    ) -> list[Event]:
        """
        Move ceiling from one item to another

        Raises:
            ValidationError: Same item, different fiscal years, or the
                source ceiling would go negative
            BudgetItemNotFound: Unknown item on either side
        """
        validate_distinct_items(command.from_budget_item_id, command.to_budget_item_id)
        source = txn.item(command.from_budget_item_id)
        destination = txn.item(command.to_budget_item_id)
        validate_same_fiscal_year(source, destination)

        out_id = generate_id()
        in_id = generate_id()
        from_previous = source.budget_amount
        to_previous = destination.budget_amount

        txn.adjust_allocation(source.budget_item_id, -command.amount, amendment_id=out_id)
        txn.adjust_allocation(destination.budget_item_id, command.amount, amendment_id=in_id)

        now = self.time_provider.now()
        payload = BudgetTransferRecorded(
            out_amendment_id=out_id,
            in_amendment_id=in_id,
            from_budget_item_id=source.budget_item_id,
            from_code=source.code,
            from_previous_amount=from_previous,
            from_new_amount=source.budget_amount,
            to_budget_item_id=destination.budget_item_id,
            to_code=destination.code,
            to_previous_amount=to_previous,
            to_new_amount=destination.budget_amount,
            amount=command.amount,
            reason=command.reason,
            fiscal_year=source.fiscal_year,
            created_by=actor_id,
            created_at=now,
        )
        return [self._event(out_id, "BudgetTransferRecorded", payload, command_id, actor_id)]

    def _single(
        self,
        amendment_type: AmendmentType,
        budget_item_id: str,
        amount: Decimal,
        reason: str,
        command_id: str,
        actor_id: str | None,
        txn: LedgerTransaction,
    ) -> list[Event]:
        item = txn.item(budget_item_id)
        previous = item.budget_amount
        amendment_id = generate_id()
        delta = amount if amendment_type == AmendmentType.INCREASE else -amount
        txn.adjust_allocation(budget_item_id, delta, amendment_id=amendment_id)

        payload = BudgetAmendmentRecorded(
            amendment_id=amendment_id,
            amendment_type=amendment_type,
            budget_item_id=budget_item_id,
            budget_item_code=item.code,
            amount=amount,
            reason=reason,
            fiscal_year=item.fiscal_year,
            previous_amount=previous,
            new_amount=item.budget_amount,
            created_by=actor_id,
            created_at=self.time_provider.now(),
        )
        return [
            self._event(amendment_id, "BudgetAmendmentRecorded", payload, command_id, actor_id)
        ]

    def _event(
        self,
        stream_id: str,
        event_type: str,
        payload: BaseModel,
        command_id: str,
        actor_id: str | None,
    ) -> Event:
        return create_event(
            event_id=generate_id(),
            stream_id=stream_id,
            stream_type=STREAM_TYPE,
            event_type=event_type,
            occurred_at=self.time_provider.now(),
            command_id=command_id,
            actor_id=actor_id,
            payload=payload.model_dump(mode="json"),
            version=1,
        )
