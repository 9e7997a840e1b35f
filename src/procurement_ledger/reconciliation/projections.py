"""
Reconciliation Projections - receipts and their PO links
"""

from datetime import date, datetime

from procurement_ledger.kernel.events import Event
from procurement_ledger.kernel.money import from_payload
from procurement_ledger.reconciliation.models import Receipt, ReceiptStatus


class ReceiptRegistry:
    """
    Receipt projection

    Built from events: ReceiptRecorded, ReceiptStatusChanged, ReceiptLinked,
                       ReceiptUnlinked

    Query methods: get, for_po, unlinked
    """

    def __init__(self) -> None:
        self.receipts: dict[str, Receipt] = {}

    def apply_event(self, event: Event) -> None:
        """
        Apply an event to update the projection

        Args:
            event: Event to apply (other event types are ignored)
        """
        payload = event.payload
        if event.event_type == "ReceiptRecorded":
            amount = payload.get("total_amount")
            receipt_date = payload.get("receipt_date")
            self.receipts[payload["receipt_id"]] = Receipt(
                receipt_id=payload["receipt_id"],
                total_amount=None if amount is None else from_payload(amount),
                currency=payload["currency"],
                status=ReceiptStatus(payload["status"]),
                vendor_id=payload.get("vendor_id"),
                merchant_name=payload.get("merchant_name"),
                receipt_date=date.fromisoformat(receipt_date) if receipt_date else None,
                file_ref=payload.get("file_ref"),
                created_at=datetime.fromisoformat(payload["recorded_at"]),
                version=event.version,
            )
            return

        receipt = self.receipts.get(event.stream_id)
        if receipt is None:
            return

        if event.event_type == "ReceiptStatusChanged":
            receipt.status = ReceiptStatus(payload["status"])
            if payload.get("total_amount") is not None:
                receipt.total_amount = from_payload(payload["total_amount"])
        elif event.event_type == "ReceiptLinked":
            receipt.po_id = payload["po_id"]
            receipt.linked_by = payload.get("linked_by")
            receipt.linked_at = datetime.fromisoformat(payload["linked_at"])
        elif event.event_type == "ReceiptUnlinked":
            receipt.po_id = None
            receipt.linked_by = None
            receipt.linked_at = None
        else:
            return

        receipt.version = event.version

    # ========== Query Methods ==========

    def get(self, receipt_id: str) -> Receipt | None:
        return self.receipts.get(receipt_id)

    def for_po(self, po_id: str) -> list[Receipt]:
        """Receipts linked to a PO, oldest first"""
        return sorted(
            (r for r in self.receipts.values() if r.po_id == po_id),
            key=lambda r: (r.created_at, r.receipt_id),
        )

    def unlinked(self) -> list[Receipt]:
        """Receipts not linked to any PO, newest receipt date first"""
        rows = [r for r in self.receipts.values() if r.po_id is None]
        return sorted(
            rows,
            key=lambda r: (r.receipt_date or date.min, r.created_at),
            reverse=True,
        )
