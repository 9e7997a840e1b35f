"""
Reconciliation Handlers - receipt intake and linking

Linking changes metadata only; no budget item is read or written here.
"""

from decimal import Decimal

from pydantic import BaseModel

from procurement_ledger.kernel.errors import ReceiptNotFound, ReceiptNotLinked
from procurement_ledger.kernel.events import Event, create_event
from procurement_ledger.kernel.ids import generate_id
from procurement_ledger.kernel.money import format_money
from procurement_ledger.kernel.time import TimeProvider
from procurement_ledger.purchasing.models import PurchaseOrder
from procurement_ledger.reconciliation.commands import (
    LinkReceipt,
    RecordReceipt,
    UnlinkReceipt,
    UpdateReceiptStatus,
)
from procurement_ledger.reconciliation.events import (
    STREAM_TYPE,
    ReceiptLinked,
    ReceiptRecorded,
    ReceiptStatusChanged,
    ReceiptUnlinked,
)
from procurement_ledger.reconciliation.models import Receipt

AMOUNT_WARNING_THRESHOLD = Decimal("0.01")


def validate_receipt_exists(receipt_id: str, receipts: dict[str, Receipt]) -> Receipt:
    receipt = receipts.get(receipt_id)
    if receipt is None:
        raise ReceiptNotFound(receipt_id)
    return receipt


def amount_mismatch_warning(receipt: Receipt, po: PurchaseOrder) -> str | None:
    """
    Warning text when receipt and PO totals differ by more than a cent

    None when they agree or the receipt has no amount yet.
    """
    if receipt.total_amount is None:
        return None
    difference = abs(receipt.total_amount - po.total)
    if difference <= AMOUNT_WARNING_THRESHOLD:
        return None
    return (
        f"Receipt amount ({format_money(receipt.total_amount)}) differs from PO amount "
        f"({format_money(po.total)}) by {format_money(difference)}"
    )


class ReconciliationHandlers:
    """Command handlers for receipts"""

    def __init__(self, time_provider: TimeProvider) -> None:
        self.time_provider = time_provider

    def handle_record_receipt(
        self, command: RecordReceipt, command_id: str, actor_id: str | None
    ) -> list[Event]:
        now = self.time_provider.now()
        receipt_id = generate_id()
        payload = ReceiptRecorded(
            receipt_id=receipt_id,
            recorded_at=now,
            **command.model_dump(),
        )
        return [self._event(receipt_id, 1, "ReceiptRecorded", payload, command_id, actor_id)]

    def handle_update_status(
        self,
        command: UpdateReceiptStatus,
        command_id: str,
        actor_id: str | None,
        receipts: dict[str, Receipt],
    ) -> list[Event]:
        """
        Raises:
            ReceiptNotFound
        """
        receipt = validate_receipt_exists(command.receipt_id, receipts)
        payload = ReceiptStatusChanged(
            receipt_id=receipt.receipt_id,
            previous_status=receipt.status,
            status=command.status,
            total_amount=command.total_amount,
            changed_at=self.time_provider.now(),
        )
        return [
            self._event(
                receipt.receipt_id, receipt.version + 1, "ReceiptStatusChanged",
                payload, command_id, actor_id,
            )
        ]

    def handle_link(
        self,
        command: LinkReceipt,
        command_id: str,
        actor_id: str | None,
        receipts: dict[str, Receipt],
        po: PurchaseOrder,
    ) -> list[Event]:
        """
        Link a receipt to a PO (moving it if linked elsewhere)

        Linking to the PO it is already on produces no events.

        Raises:
            ReceiptNotFound
        """
        receipt = validate_receipt_exists(command.receipt_id, receipts)
        if receipt.po_id == po.po_id:
            return []
        payload = ReceiptLinked(
            receipt_id=receipt.receipt_id,
            po_id=po.po_id,
            previous_po_id=receipt.po_id,
            linked_by=actor_id,
            linked_at=self.time_provider.now(),
        )
        return [
            self._event(
                receipt.receipt_id, receipt.version + 1, "ReceiptLinked",
                payload, command_id, actor_id,
            )
        ]

    def handle_unlink(
        self,
        command: UnlinkReceipt,
        command_id: str,
        actor_id: str | None,
        receipts: dict[str, Receipt],
    ) -> list[Event]:
        """
        Raises:
            ReceiptNotFound, ReceiptNotLinked
        """
        receipt = validate_receipt_exists(command.receipt_id, receipts)
        if receipt.po_id is None:
            raise ReceiptNotLinked(receipt.receipt_id)
        payload = ReceiptUnlinked(
            receipt_id=receipt.receipt_id,
            po_id=receipt.po_id,
            unlinked_by=actor_id,
            unlinked_at=self.time_provider.now(),
        )
        return [
            self._event(
                receipt.receipt_id, receipt.version + 1, "ReceiptUnlinked",
                payload, command_id, actor_id,
            )
        ]

    def _event(
        self,
        stream_id: str,
        version: int,
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
            version=version,
        )
