"""
Purchase Order Projections - current state and history of every PO

PurchaseOrderRegistry also hands out PO numbers: PO-<year>-<seq>, the
sequence restarting each year unless the policy says otherwise.
"""

import re
from datetime import date, datetime
from decimal import Decimal

from procurement_ledger.kernel.events import Event
from procurement_ledger.purchasing.models import (
    POLineItem,
    POStatus,
    PurchaseOrder,
    StatusChange,
)


class PurchaseOrderRegistry:
    """
    Main purchase order projection

    Built from events: PurchaseOrderCreated, LineItemsSaved,
                       PurchaseOrderDetailsUpdated, PurchaseOrderSubmitted,
                       AutoApprovalDeclined, PurchaseOrderApproved,
                       PurchaseOrderRejected, PurchaseOrderCancelled,
                       PurchaseOrderRevised, PurchaseOrderCompleted,
                       PurchaseOrderVoided, ReceiptLinked, ReceiptUnlinked

    Query methods: get, list_filtered, open_po_numbers_for_budget_item,
                   next_po_number
    """

    def __init__(self) -> None:
        self.purchase_orders: dict[str, PurchaseOrder] = {}
        self._sequence_by_year: dict[int, int] = {}

    def apply_event(self, event: Event) -> None:
        """
        Apply an event to update the projection

        Args:
            event: Event to apply (other event types are ignored)
        """
        if event.event_type == "PurchaseOrderCreated":
            self._apply_created(event)
            return

        if event.event_type in ("ReceiptLinked", "ReceiptUnlinked"):
            self._apply_receipt_link(event)
            return

        po = self.purchase_orders.get(event.stream_id)
        if po is None:
            return

        handler = getattr(self, f"_apply_{_snake(event.event_type)}", None)
        if handler is None:
            return
        handler(po, event)
        po.version = event.version

    def _apply_created(self, event: Event) -> None:
        payload = event.payload
        created_at = datetime.fromisoformat(payload["created_at"])
        po = PurchaseOrder(
            po_id=payload["po_id"],
            po_number=payload["po_number"],
            po_date=date.fromisoformat(payload["po_date"]),
            vendor_id=payload.get("vendor_id"),
            vendor_name=payload["vendor_name"],
            requester_id=payload["requester_id"],
            requester_name=payload.get("requester_name", ""),
            department=payload.get("department"),
            notes=payload.get("notes"),
            line_items=[POLineItem.model_validate(line) for line in payload["line_items"]],
            created_at=created_at,
            history=[
                StatusChange(
                    from_status=None,
                    to_status=POStatus.DRAFT,
                    actor_id=event.actor_id,
                    occurred_at=created_at,
                )
            ],
            version=event.version,
        )
        self.purchase_orders[po.po_id] = po
        self._note_number(po.po_number)

    def _apply_line_items_saved(self, po: PurchaseOrder, event: Event) -> None:
        po.line_items = [POLineItem.model_validate(line) for line in event.payload["line_items"]]

    def _apply_purchase_order_details_updated(self, po: PurchaseOrder, event: Event) -> None:
        changes = event.payload["changes"]
        for field, value in changes.items():
            if field == "po_date" and value is not None:
                value = date.fromisoformat(value)
            setattr(po, field, value)

    def _apply_purchase_order_submitted(self, po: PurchaseOrder, event: Event) -> None:
        po.submitted_at = datetime.fromisoformat(event.payload["submitted_at"])
        self._move(po, POStatus.PENDING_APPROVAL, event, po.submitted_at)

    def _apply_auto_approval_declined(self, po: PurchaseOrder, event: Event) -> None:
        po.auto_approval_note = event.payload["note"]

    def _apply_purchase_order_approved(self, po: PurchaseOrder, event: Event) -> None:
        payload = event.payload
        po.approved_by = payload["approved_by"]
        po.approved_at = datetime.fromisoformat(payload["approved_at"])
        po.approval_note = payload.get("note")
        po.auto_approved = payload.get("auto_approved", False)
        po.over_budget_override = payload.get("over_budget_override", False)
        self._move(
            po,
            POStatus.APPROVED,
            event,
            po.approved_at,
            actor_id=po.approved_by,
            note=po.approval_note,
            automatic=po.auto_approved,
        )

    def _apply_purchase_order_rejected(self, po: PurchaseOrder, event: Event) -> None:
        payload = event.payload
        po.rejected_by = payload["rejected_by"]
        po.rejected_at = datetime.fromisoformat(payload["rejected_at"])
        po.rejection_note = payload["note"]
        self._move(po, POStatus.REJECTED, event, po.rejected_at, note=po.rejection_note)

    def _apply_purchase_order_cancelled(self, po: PurchaseOrder, event: Event) -> None:
        payload = event.payload
        po.cancelled_by = payload["cancelled_by"]
        po.cancelled_at = datetime.fromisoformat(payload["cancelled_at"])
        po.cancellation_note = payload.get("note")
        self._move(po, POStatus.CANCELLED, event, po.cancelled_at, note=po.cancellation_note)

    def _apply_purchase_order_revised(self, po: PurchaseOrder, event: Event) -> None:
        payload = event.payload
        po.rejected_by = None
        po.rejected_at = None
        po.rejection_note = None
        po.auto_approval_note = None
        po.submitted_at = None
        self._move(
            po,
            POStatus.DRAFT,
            event,
            datetime.fromisoformat(payload["revised_at"]),
            note=payload.get("note"),
        )

    def _apply_purchase_order_completed(self, po: PurchaseOrder, event: Event) -> None:
        payload = event.payload
        po.completed_by = payload["completed_by"]
        po.completed_at = datetime.fromisoformat(payload["completed_at"])
        self._move(po, POStatus.COMPLETED, event, po.completed_at, note=payload.get("note"))

    def _apply_purchase_order_voided(self, po: PurchaseOrder, event: Event) -> None:
        payload = event.payload
        po.voided_by = payload["voided_by"]
        po.voided_at = datetime.fromisoformat(payload["voided_at"])
        po.void_note = payload["note"]
        self._move(po, POStatus.CANCELLED, event, po.voided_at, note=po.void_note)

    def _apply_receipt_link(self, event: Event) -> None:
        payload = event.payload
        receipt_id = payload["receipt_id"]
        previous = self.purchase_orders.get(payload.get("previous_po_id") or "")
        if previous is not None and receipt_id in previous.receipt_ids:
            previous.receipt_ids.remove(receipt_id)

        po = self.purchase_orders.get(payload["po_id"])
        if po is None:
            return
        if event.event_type == "ReceiptLinked":
            if receipt_id not in po.receipt_ids:
                po.receipt_ids.append(receipt_id)
        elif receipt_id in po.receipt_ids:
            po.receipt_ids.remove(receipt_id)

    def _move(
        self,
        po: PurchaseOrder,
        to_status: POStatus,
        event: Event,
        occurred_at: datetime,
        *,
        actor_id: str | None = None,
        note: str | None = None,
        automatic: bool = False,
    ) -> None:
        po.history.append(
            StatusChange(
                from_status=po.status,
                to_status=to_status,
                actor_id=actor_id or event.actor_id,
                note=note,
                occurred_at=occurred_at,
                automatic=automatic,
            )
        )
        po.status = to_status

    # ========== PO Numbering ==========

    def _note_number(self, po_number: str) -> None:
        match = _PO_NUMBER.search(po_number)
        if match:
            year, seq = int(match.group(1)), int(match.group(2))
            self._sequence_by_year[year] = max(self._sequence_by_year.get(year, 0), seq)

    def next_po_number(self, prefix: str, year: int, reset_yearly: bool = True) -> str:
        """
        Next free PO number, e.g. "PO-2025-007"

        The caller must serialize PO creation so two requests never get the
        same number.
        """
        if reset_yearly:
            last = self._sequence_by_year.get(year, 0)
        else:
            last = max(self._sequence_by_year.values(), default=0)
        return f"{prefix}{year}-{last + 1:03d}"

    # ========== Query Methods ==========

    def get(self, po_id: str) -> PurchaseOrder | None:
        return self.purchase_orders.get(po_id)

    def get_by_number(self, po_number: str) -> PurchaseOrder | None:
        for po in self.purchase_orders.values():
            if po.po_number == po_number:
                return po
        return None

    def list_filtered(
        self,
        statuses: list[POStatus] | None = None,
        department: str | None = None,
        requester_id: str | None = None,
        vendor: str | None = None,
    ) -> list[PurchaseOrder]:
        """
        POs matching every given filter, newest first

        Args:
            statuses: Any of these statuses
            department: Exact department
            requester_id: Exact requester
            vendor: Case-insensitive substring of vendor name
        """
        rows = []
        for po in self.purchase_orders.values():
            if statuses and po.status not in statuses:
                continue
            if department and po.department != department:
                continue
            if requester_id and po.requester_id != requester_id:
                continue
            if vendor and vendor.lower() not in po.vendor_name.lower():
                continue
            rows.append(po)
        return sorted(rows, key=lambda p: (p.created_at, p.po_number), reverse=True)

    def list_by_statuses(self, statuses: list[POStatus]) -> list[PurchaseOrder]:
        return [po for po in self.purchase_orders.values() if po.status in statuses]

    def open_po_numbers_for_budget_item(self, budget_item_id: str) -> list[str]:
        """Numbers of non-cancelled POs with at least one line on the item"""
        return sorted(
            po.po_number
            for po in self.purchase_orders.values()
            if not po.status.is_terminal
            and any(line.budget_item_id == budget_item_id for line in po.line_items)
        )

    def committed_by_budget_item(self) -> dict[str, tuple[Decimal, Decimal]]:
        """
        (encumbered, actual_spent) each budget item should have according to
        PO states: APPROVED lines are encumbered, COMPLETED lines are spent
        """
        totals: dict[str, tuple[Decimal, Decimal]] = {}
        for po in self.purchase_orders.values():
            if po.status not in (POStatus.APPROVED, POStatus.COMPLETED):
                continue
            for line in po.line_items:
                enc, spent = totals.get(line.budget_item_id, (Decimal("0"), Decimal("0")))
                if po.status == POStatus.APPROVED:
                    enc += line.amount
                else:
                    spent += line.amount
                totals[line.budget_item_id] = (enc, spent)
        return totals


_PO_NUMBER = re.compile(r"(\d{4})-(\d+)$")


def _snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()
