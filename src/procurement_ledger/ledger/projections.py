"""
Budget Ledger Projections - current balances of every budget item

BudgetItemRegistry is rebuilt by replaying budget_item events. Balance
events carry the balances after the move, so applying one simply sets them.
"""

from datetime import datetime
from decimal import Decimal

from procurement_ledger.kernel.events import Event
from procurement_ledger.kernel.money import from_payload
from procurement_ledger.ledger.models import BudgetItem


class BudgetItemRegistry:
    """
    Main ledger projection - one BudgetItem per id

    Built from events: BudgetItemCreated, BudgetItemDeleted, FundsReserved,
                       FundsReleased, FundsRealized, RealizationReversed,
                       AllocationAdjusted

    Query methods: get, get_by_code, list_live, list_over_budget
    """

    EVENT_TYPES = frozenset(
        {
            "BudgetItemCreated",
            "BudgetItemDeleted",
            "FundsReserved",
            "FundsReleased",
            "FundsRealized",
            "RealizationReversed",
            "AllocationAdjusted",
        }
    )

    def __init__(self) -> None:
        self.budget_items: dict[str, BudgetItem] = {}

    def apply_event(self, event: Event) -> None:
        """
        Apply an event to update the projection

        Args:
            event: Event to apply (other event types are ignored)
        """
        if event.event_type == "BudgetItemCreated":
            self._apply_created(event)
            return

        item = self.budget_items.get(event.stream_id)
        if item is None:
            return

        payload = event.payload
        if event.event_type == "BudgetItemDeleted":
            item.deleted = True
            item.deleted_at = datetime.fromisoformat(payload["deleted_at"])
        elif event.event_type == "FundsReserved":
            item.encumbered = from_payload(payload["encumbered_after"])
            item.reservations[payload["token"]] = from_payload(payload["amount"])
        elif event.event_type == "FundsReleased":
            item.encumbered = from_payload(payload["encumbered_after"])
            item.reservations.pop(payload["token"], None)
        elif event.event_type == "FundsRealized":
            item.encumbered = from_payload(payload["encumbered_after"])
            item.actual_spent = from_payload(payload["actual_spent_after"])
            item.reservations.pop(payload["token"], None)
            item.realizations[payload["token"]] = from_payload(payload["amount"])
        elif event.event_type == "RealizationReversed":
            item.actual_spent = from_payload(payload["actual_spent_after"])
            item.realizations.pop(payload["token"], None)
        elif event.event_type == "AllocationAdjusted":
            item.budget_amount = from_payload(payload["new_amount"])
        else:
            return

        item.version = event.version

    def _apply_created(self, event: Event) -> None:
        payload = event.payload
        self.budget_items[payload["budget_item_id"]] = BudgetItem(
            budget_item_id=payload["budget_item_id"],
            code=payload["code"],
            description=payload["description"],
            category=payload.get("category"),
            fiscal_year=payload["fiscal_year"],
            budget_amount=from_payload(payload["budget_amount"]),
            encumbered=Decimal("0.00"),
            actual_spent=Decimal("0.00"),
            created_at=datetime.fromisoformat(payload["created_at"]),
            created_by=payload.get("created_by"),
            version=event.version,
        )

    # ========== Query Methods ==========

    def get(self, budget_item_id: str) -> BudgetItem | None:
        """Live budget item by id (None if unknown or deleted)"""
        item = self.budget_items.get(budget_item_id)
        if item is None or item.deleted:
            return None
        return item

    def get_by_code(self, code: str) -> BudgetItem | None:
        wanted = code.strip().upper()
        for item in self.budget_items.values():
            if not item.deleted and item.code.upper() == wanted:
                return item
        return None

    def list_live(self, fiscal_year: int | None = None) -> list[BudgetItem]:
        """
        Live items ordered by code

        Args:
            fiscal_year: Optional year filter
        """
        items = [
            item
            for item in self.budget_items.values()
            if not item.deleted and (fiscal_year is None or item.fiscal_year == fiscal_year)
        ]
        return sorted(items, key=lambda i: i.code)

    def list_over_budget(self, fiscal_year: int | None = None) -> list[BudgetItem]:
        return [item for item in self.list_live(fiscal_year) if item.over_budget]
