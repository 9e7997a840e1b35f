"""
Tests for purchase order handlers and their ledger effects
"""

from datetime import date
from decimal import Decimal

import pytest

from procurement_ledger.kernel.errors import (
    BudgetItemNotFound,
    InsufficientBudget,
    NotEditable,
    OverrideNotPermitted,
    SelfApprovalForbidden,
    ValidationError,
)
from procurement_ledger.kernel.identity import Actor
from procurement_ledger.kernel.policy import ProcurementPolicy
from procurement_ledger.ledger.handlers import BudgetLedgerHandlers
from procurement_ledger.purchasing.commands import (
    CreatePurchaseOrder,
    LineItemInput,
    SaveLineItems,
    TransitionPurchaseOrder,
    UpdatePurchaseOrderDetails,
)
from procurement_ledger.purchasing.handlers import PurchaseOrderHandlers
from procurement_ledger.purchasing.models import POStatus
from tests.helpers import make_budget_item, make_po

ALICE = Actor(actor_id="alice", role="USER")
BOB = Actor(actor_id="bob", role="MANAGER")
FRAN = Actor(actor_id="fran", role="FINANCE")


@pytest.fixture
def items():
    return {"bi-1": make_budget_item(budget_amount="1000.00")}


def _handlers(test_time, **policy) -> PurchaseOrderHandlers:
    return PurchaseOrderHandlers(test_time, ProcurementPolicy(**policy))


def _txn(test_time, items):
    return BudgetLedgerHandlers(test_time, ProcurementPolicy()).begin(items, "cmd", "bob")


def _transition(handlers, po, txn, actor, status, note=None, override=False, receipts=0):
    command = TransitionPurchaseOrder(
        po_id=po.po_id, new_status=status, note=note, override=override
    )
    return handlers.handle_transition(command, "cmd", actor, po, txn, linked_receipt_count=receipts)


class TestDraftEditing:
    def test_create_emits_created_with_lines(self, test_time, items) -> None:
        command = CreatePurchaseOrder(
            vendor_name="Staples",
            po_date=date(2025, 3, 3),
            line_items=[LineItemInput(description="Paper", amount="12.5", budget_item_id="bi-1")],
        )
        events = _handlers(test_time).handle_create_purchase_order(
            command, "cmd", ALICE, items, "PO-2025-001"
        )
        assert len(events) == 1
        payload = events[0].payload
        assert events[0].version == 1
        assert payload["po_number"] == "PO-2025-001"
        assert payload["requester_id"] == "alice"
        assert payload["line_items"][0]["amount"] == "12.50"

    def test_create_rejects_unknown_budget_item(self, test_time, items) -> None:
        command = CreatePurchaseOrder(
            vendor_name="Staples",
            po_date=date(2025, 3, 3),
            line_items=[LineItemInput(description="Paper", amount="1", budget_item_id="nope")],
        )
        with pytest.raises(BudgetItemNotFound):
            _handlers(test_time).handle_create_purchase_order(command, "cmd", ALICE, items, "PO-1")

    def test_save_lines_only_in_draft(self, test_time, items) -> None:
        po = make_po([("bi-1", "10.00")], status=POStatus.PENDING_APPROVAL)
        command = SaveLineItems(
            po_id=po.po_id,
            line_items=[LineItemInput(description="Pens", amount="5", budget_item_id="bi-1")],
        )
        with pytest.raises(NotEditable):
            _handlers(test_time).handle_save_line_items(command, "cmd", ALICE, po, items)

    def test_save_lines_replaces_and_totals(self, test_time, items) -> None:
        po = make_po([("bi-1", "10.00")])
        command = SaveLineItems(
            po_id=po.po_id,
            line_items=[
                LineItemInput(description="Pens", amount="5", budget_item_id="bi-1"),
                LineItemInput(description="Ink", amount="7.25", budget_item_id="bi-1"),
            ],
        )
        events = _handlers(test_time).handle_save_line_items(command, "cmd", ALICE, po, items)
        assert events[0].version == 2
        assert events[0].payload["total"] == "12.25"

    def test_update_details_without_changes_emits_nothing(self, test_time) -> None:
        po = make_po([("bi-1", "10.00")])
        command = UpdatePurchaseOrderDetails(po_id=po.po_id)
        assert _handlers(test_time).handle_update_details(command, "cmd", ALICE, po) == []

    def test_update_details_records_only_given_fields(self, test_time) -> None:
        po = make_po([("bi-1", "10.00")])
        command = UpdatePurchaseOrderDetails(po_id=po.po_id, department="Ops")
        events = _handlers(test_time).handle_update_details(command, "cmd", ALICE, po)
        assert events[0].payload["changes"] == {"department": "Ops"}


class TestSubmit:
    def test_submit_without_auto_approval(self, test_time, items) -> None:
        po = make_po([("bi-1", "100.00")])
        txn = _txn(test_time, items)
        events, decision = _handlers(test_time).handle_submit("cmd", ALICE, po, txn)
        assert [e.event_type for e in events] == ["PurchaseOrderSubmitted"]
        assert decision.reason_code == "disabled"
        assert txn.events == []

    def test_submit_auto_approves_and_reserves(self, test_time, items) -> None:
        po = make_po([("bi-1", "100.00")])
        txn = _txn(test_time, items)
        handlers = _handlers(test_time, auto_approval_enabled=True)
        events, decision = handlers.handle_submit("cmd", ALICE, po, txn)

        assert decision.approved
        assert [e.event_type for e in events] == ["PurchaseOrderSubmitted", "PurchaseOrderApproved"]
        assert [e.version for e in events] == [2, 3]
        approved = events[1].payload
        assert approved["approved_by"] == "system"
        assert approved["auto_approved"] is True
        assert txn.item("bi-1").encumbered == Decimal("100.00")

    def test_submit_declined_records_note(self, test_time, items) -> None:
        po = make_po([("bi-1", "600.00")])
        txn = _txn(test_time, items)
        handlers = _handlers(test_time, auto_approval_enabled=True)
        events, decision = handlers.handle_submit("cmd", ALICE, po, txn)

        assert [e.event_type for e in events] == ["PurchaseOrderSubmitted", "AutoApprovalDeclined"]
        assert events[1].payload["note"] == "Over auto-approval threshold ($500.00)"
        assert txn.item("bi-1").encumbered == Decimal("0.00")

    def test_submit_empty_po_refused(self, test_time, items) -> None:
        po = make_po([])
        with pytest.raises(ValidationError):
            _handlers(test_time).handle_submit("cmd", ALICE, po, _txn(test_time, items))


class TestApprove:
    def test_manual_approval_reserves_each_line(self, test_time, items) -> None:
        po = make_po([("bi-1", "100.00"), ("bi-1", "50.00")], status=POStatus.PENDING_APPROVAL)
        txn = _txn(test_time, items)
        events = _transition(_handlers(test_time), po, txn, BOB, POStatus.APPROVED)

        assert events[0].event_type == "PurchaseOrderApproved"
        item = txn.item("bi-1")
        assert item.encumbered == Decimal("150.00")
        assert set(item.reservations) == {"po-1-line-1", "po-1-line-2"}

    def test_self_approval_forbidden(self, test_time, items) -> None:
        po = make_po([("bi-1", "100.00")], status=POStatus.PENDING_APPROVAL)
        with pytest.raises(SelfApprovalForbidden):
            _transition(_handlers(test_time), po, _txn(test_time, items), ALICE, POStatus.APPROVED)

    def test_self_approval_allowed_by_policy(self, test_time, items) -> None:
        po = make_po([("bi-1", "100.00")], status=POStatus.PENDING_APPROVAL)
        handlers = _handlers(test_time, forbid_self_approval=False)
        events = _transition(handlers, po, _txn(test_time, items), ALICE, POStatus.APPROVED)
        assert events[0].payload["approved_by"] == "alice"

    def test_insufficient_budget(self, test_time, items) -> None:
        po = make_po([("bi-1", "1000.01")], status=POStatus.PENDING_APPROVAL)
        with pytest.raises(InsufficientBudget) as exc_info:
            _transition(_handlers(test_time), po, _txn(test_time, items), BOB, POStatus.APPROVED)
        assert exc_info.value.requested == Decimal("1000.01")
        assert exc_info.value.available == Decimal("1000.00")

    def test_override_needs_role(self, test_time, items) -> None:
        po = make_po([("bi-1", "1200.00")], status=POStatus.PENDING_APPROVAL)
        with pytest.raises(OverrideNotPermitted):
            _transition(
                _handlers(test_time), po, _txn(test_time, items), BOB, POStatus.APPROVED,
                override=True,
            )

    def test_override_by_finance_flags_po(self, test_time, items) -> None:
        po = make_po([("bi-1", "1200.00")], status=POStatus.PENDING_APPROVAL)
        txn = _txn(test_time, items)
        events = _transition(
            _handlers(test_time), po, txn, FRAN, POStatus.APPROVED, override=True
        )
        assert events[0].payload["over_budget_override"] is True
        assert txn.item("bi-1").available == Decimal("-200.00")


class TestCompleteAndVoid:
    def _approved(self, items):
        items["bi-1"].encumbered = Decimal("100.00")
        items["bi-1"].reservations = {"po-1-line-1": Decimal("100.00")}
        return make_po([("bi-1", "100.00")], status=POStatus.APPROVED)

    def test_complete_realizes(self, test_time, items) -> None:
        po = self._approved(items)
        txn = _txn(test_time, items)
        _transition(_handlers(test_time), po, txn, BOB, POStatus.COMPLETED)
        item = txn.item("bi-1")
        assert item.encumbered == Decimal("0.00")
        assert item.actual_spent == Decimal("100.00")

    def test_complete_needs_receipt_when_configured(self, test_time, items) -> None:
        po = self._approved(items)
        handlers = _handlers(test_time, require_receipt_for_completion=True)
        with pytest.raises(ValidationError):
            _transition(handlers, po, _txn(test_time, items), BOB, POStatus.COMPLETED)
        events = _transition(
            handlers, po, _txn(test_time, items), BOB, POStatus.COMPLETED, receipts=1
        )
        assert events[0].event_type == "PurchaseOrderCompleted"

    def test_void_approved_releases(self, test_time, items) -> None:
        po = self._approved(items)
        txn = _txn(test_time, items)
        events = _transition(
            _handlers(test_time), po, txn, BOB, POStatus.CANCELLED, note="Vendor out of stock"
        )
        assert events[0].event_type == "PurchaseOrderVoided"
        assert events[0].payload["from_status"] == "APPROVED"
        assert txn.item("bi-1").encumbered == Decimal("0.00")

    def test_void_completed_reverses_spend(self, test_time, items) -> None:
        items["bi-1"].actual_spent = Decimal("100.00")
        items["bi-1"].realizations = {"po-1-line-1": Decimal("100.00")}
        po = make_po([("bi-1", "100.00")], status=POStatus.COMPLETED)
        txn = _txn(test_time, items)
        _transition(_handlers(test_time), po, txn, BOB, POStatus.CANCELLED, note="Refunded")
        item = txn.item("bi-1")
        assert item.actual_spent == Decimal("0.00")
        assert item.encumbered == Decimal("0.00")
        assert item.available == Decimal("1000.00")

    def test_reject_and_revise_leave_ledger_alone(self, test_time, items) -> None:
        handlers = _handlers(test_time)
        txn = _txn(test_time, items)
        po = make_po([("bi-1", "100.00")], status=POStatus.PENDING_APPROVAL)
        rejected = _transition(handlers, po, txn, BOB, POStatus.REJECTED, note="Too pricey")
        assert rejected[0].payload["note"] == "Too pricey"

        po = make_po([("bi-1", "100.00")], status=POStatus.REJECTED)
        revised = _transition(handlers, po, txn, ALICE, POStatus.DRAFT)
        assert revised[0].event_type == "PurchaseOrderRevised"
        assert txn.events == []
