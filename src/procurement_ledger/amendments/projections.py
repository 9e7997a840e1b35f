"""
Amendment Projections - the browsable amendment log

AmendmentLog turns amendment events into BudgetAmendment rows. A transfer
event becomes two rows that point at each other.
"""

from datetime import datetime

from procurement_ledger.amendments.models import AmendmentType, BudgetAmendment
from procurement_ledger.kernel.events import Event
from procurement_ledger.kernel.money import from_payload


class AmendmentLog:
    """
    Amendment audit log

    Built from events: BudgetAmendmentRecorded, BudgetTransferRecorded

    Query methods: get, list_filtered, for_budget_item
    """

    def __init__(self) -> None:
        self.amendments: dict[str, BudgetAmendment] = {}
        self._order: list[str] = []

    def apply_event(self, event: Event) -> None:
        """
        Apply an event to update the log

        Args:
            event: Event to apply (other event types are ignored)
        """
        if event.event_type == "BudgetAmendmentRecorded":
            self._apply_recorded(event)
        elif event.event_type == "BudgetTransferRecorded":
            self._apply_transfer(event)

    def _apply_recorded(self, event: Event) -> None:
        payload = event.payload
        self._add(
            BudgetAmendment(
                amendment_id=payload["amendment_id"],
                amendment_type=AmendmentType(payload["amendment_type"]),
                budget_item_id=payload["budget_item_id"],
                budget_item_code=payload["budget_item_code"],
                amount=from_payload(payload["amount"]),
                reason=payload["reason"],
                fiscal_year=payload["fiscal_year"],
                previous_amount=from_payload(payload["previous_amount"]),
                new_amount=from_payload(payload["new_amount"]),
                created_by=payload.get("created_by"),
                created_at=datetime.fromisoformat(payload["created_at"]),
            )
        )

    def _apply_transfer(self, event: Event) -> None:
        payload = event.payload
        created_at = datetime.fromisoformat(payload["created_at"])
        common = {
            "amount": from_payload(payload["amount"]),
            "fiscal_year": payload["fiscal_year"],
            "from_budget_item_id": payload["from_budget_item_id"],
            "to_budget_item_id": payload["to_budget_item_id"],
            "created_by": payload.get("created_by"),
            "created_at": created_at,
        }
        self._add(
            BudgetAmendment(
                amendment_id=payload["out_amendment_id"],
                amendment_type=AmendmentType.TRANSFER_OUT,
                budget_item_id=payload["from_budget_item_id"],
                budget_item_code=payload["from_code"],
                reason=payload["reason"],
                previous_amount=from_payload(payload["from_previous_amount"]),
                new_amount=from_payload(payload["from_new_amount"]),
                related_amendment_id=payload["in_amendment_id"],
                **common,
            )
        )
        self._add(
            BudgetAmendment(
                amendment_id=payload["in_amendment_id"],
                amendment_type=AmendmentType.TRANSFER_IN,
                budget_item_id=payload["to_budget_item_id"],
                budget_item_code=payload["to_code"],
                reason=f"Transfer from {payload['from_code']}: {payload['reason']}",
                previous_amount=from_payload(payload["to_previous_amount"]),
                new_amount=from_payload(payload["to_new_amount"]),
                related_amendment_id=payload["out_amendment_id"],
                **common,
            )
        )

    def _add(self, amendment: BudgetAmendment) -> None:
        if amendment.amendment_id not in self.amendments:
            self._order.append(amendment.amendment_id)
        self.amendments[amendment.amendment_id] = amendment

    # ========== Query Methods ==========

    def get(self, amendment_id: str) -> BudgetAmendment | None:
        return self.amendments.get(amendment_id)

    def list_filtered(
        self,
        amendment_type: AmendmentType | None = None,
        fiscal_year: int | None = None,
        budget_item_id: str | None = None,
    ) -> list[BudgetAmendment]:
        """
        Amendments matching every given filter, newest first
        """
        rows = []
        for amendment_id in reversed(self._order):
            amendment = self.amendments[amendment_id]
            if amendment_type and amendment.amendment_type != amendment_type:
                continue
            if fiscal_year and amendment.fiscal_year != fiscal_year:
                continue
            if budget_item_id and amendment.budget_item_id != budget_item_id:
                continue
            rows.append(amendment)
        return rows

    def for_budget_item(self, budget_item_id: str) -> list[BudgetAmendment]:
        return self.list_filtered(budget_item_id=budget_item_id)
