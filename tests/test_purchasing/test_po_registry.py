"""
Tests for the purchase order registry projection and PO numbering
"""

from datetime import date, datetime, timezone

from procurement_ledger.kernel.events import create_event
from procurement_ledger.purchasing.models import POStatus
from procurement_ledger.purchasing.projections import PurchaseOrderRegistry
from tests.helpers import T0, make_po


def _created(po_id: str, po_number: str, created_at: datetime = T0, **fields):
    payload = {
        "po_id": po_id,
        "po_number": po_number,
        "po_date": "2025-03-03",
        "vendor_name": fields.pop("vendor_name", "Staples"),
        "requester_id": fields.pop("requester_id", "alice"),
        "line_items": [
            {"line_item_id": f"{po_id}-l1", "description": "Paper", "amount": "10.00",
             "budget_item_id": "bi-1"}
        ],
        "created_at": created_at.isoformat(),
        **fields,
    }
    return create_event(
        event_id=f"evt-{po_id}",
        stream_id=po_id,
        stream_type="purchase_order",
        event_type="PurchaseOrderCreated",
        occurred_at=created_at,
        command_id=f"cmd-{po_id}",
        actor_id="alice",
        payload=payload,
        version=1,
    )


def _event(po_id: str, event_type: str, version: int, payload: dict):
    return create_event(
        event_id=f"evt-{po_id}-{version}",
        stream_id=po_id,
        stream_type="purchase_order",
        event_type=event_type,
        occurred_at=T0,
        command_id=f"cmd-{po_id}-{version}",
        actor_id="bob",
        payload=payload,
        version=version,
    )


class TestNumbering:
    def test_first_number_of_year(self) -> None:
        assert PurchaseOrderRegistry().next_po_number("PO-", 2025) == "PO-2025-001"

    def test_sequence_follows_existing_numbers(self) -> None:
        registry = PurchaseOrderRegistry()
        registry.apply_event(_created("po-1", "PO-2025-001"))
        registry.apply_event(_created("po-2", "PO-2025-007"))
        assert registry.next_po_number("PO-", 2025) == "PO-2025-008"

    def test_sequence_resets_each_year(self) -> None:
        registry = PurchaseOrderRegistry()
        registry.apply_event(_created("po-1", "PO-2024-041"))
        assert registry.next_po_number("PO-", 2025) == "PO-2025-001"
        assert registry.next_po_number("PO-", 2025, reset_yearly=False) == "PO-2025-042"

    def test_sequence_grows_past_three_digits(self) -> None:
        registry = PurchaseOrderRegistry()
        registry.apply_event(_created("po-1", "PO-2025-999"))
        assert registry.next_po_number("PO-", 2025) == "PO-2025-1000"


class TestLifecycleProjection:
    def test_history_and_fields(self) -> None:
        registry = PurchaseOrderRegistry()
        registry.apply_event(_created("po-1", "PO-2025-001"))
        registry.apply_event(
            _event("po-1", "PurchaseOrderSubmitted", 2, {
                "po_id": "po-1", "total": "10.00", "submitted_by": "alice",
                "submitted_at": T0.isoformat(),
            })
        )
        registry.apply_event(
            _event("po-1", "PurchaseOrderRejected", 3, {
                "po_id": "po-1", "rejected_by": "bob", "rejected_at": T0.isoformat(),
                "note": "Wrong vendor",
            })
        )
        po = registry.get("po-1")
        assert po.status == POStatus.REJECTED
        assert po.rejection_note == "Wrong vendor"
        assert po.version == 3
        assert [(h.from_status, h.to_status) for h in po.history] == [
            (None, POStatus.DRAFT),
            (POStatus.DRAFT, POStatus.PENDING_APPROVAL),
            (POStatus.PENDING_APPROVAL, POStatus.REJECTED),
        ]

        registry.apply_event(
            _event("po-1", "PurchaseOrderRevised", 4, {
                "po_id": "po-1", "revised_by": "alice", "revised_at": T0.isoformat(),
                "note": None,
            })
        )
        assert po.status == POStatus.DRAFT
        assert po.rejection_note is None
        assert po.submitted_at is None

    def test_details_update_parses_date(self) -> None:
        registry = PurchaseOrderRegistry()
        registry.apply_event(_created("po-1", "PO-2025-001"))
        registry.apply_event(
            _event("po-1", "PurchaseOrderDetailsUpdated", 2, {
                "po_id": "po-1",
                "changes": {"po_date": "2025-04-01", "vendor_name": "Acme"},
                "updated_at": T0.isoformat(),
            })
        )
        po = registry.get("po-1")
        assert po.po_date == date(2025, 4, 1)
        assert po.vendor_name == "Acme"

    def test_events_for_unknown_po_are_ignored(self) -> None:
        registry = PurchaseOrderRegistry()
        registry.apply_event(
            _event("ghost", "PurchaseOrderSubmitted", 2, {
                "po_id": "ghost", "total": "1.00", "submitted_by": "x",
                "submitted_at": T0.isoformat(),
            })
        )
        assert registry.get("ghost") is None


class TestQueries:
    def _registry(self) -> PurchaseOrderRegistry:
        registry = PurchaseOrderRegistry()
        later = datetime(2025, 3, 4, tzinfo=timezone.utc)
        registry.apply_event(_created("po-1", "PO-2025-001", department="IT"))
        registry.apply_event(
            _created("po-2", "PO-2025-002", created_at=later, vendor_name="Acme Corp",
                     requester_id="carol")
        )
        return registry

    def test_newest_first(self) -> None:
        assert [p.po_number for p in self._registry().list_filtered()] == [
            "PO-2025-002",
            "PO-2025-001",
        ]

    def test_filters(self) -> None:
        registry = self._registry()
        assert [p.po_id for p in registry.list_filtered(department="IT")] == ["po-1"]
        assert [p.po_id for p in registry.list_filtered(requester_id="carol")] == ["po-2"]
        assert [p.po_id for p in registry.list_filtered(vendor="acme")] == ["po-2"]
        assert registry.list_filtered(statuses=[POStatus.APPROVED]) == []

    def test_open_po_numbers_exclude_cancelled(self) -> None:
        registry = PurchaseOrderRegistry()
        registry.purchase_orders["a"] = make_po([("bi-1", "1.00")], po_id="a", po_number="PO-2025-002")
        registry.purchase_orders["b"] = make_po(
            [("bi-1", "1.00")], po_id="b", po_number="PO-2025-001", status=POStatus.CANCELLED
        )
        registry.purchase_orders["c"] = make_po(
            [("bi-2", "1.00")], po_id="c", po_number="PO-2025-003"
        )
        assert registry.open_po_numbers_for_budget_item("bi-1") == ["PO-2025-002"]

    def test_committed_by_budget_item(self) -> None:
        registry = PurchaseOrderRegistry()
        registry.purchase_orders["a"] = make_po(
            [("bi-1", "10.00"), ("bi-1", "5.00")], po_id="a", status=POStatus.APPROVED
        )
        registry.purchase_orders["b"] = make_po(
            [("bi-1", "7.00")], po_id="b", status=POStatus.COMPLETED
        )
        registry.purchase_orders["c"] = make_po(
            [("bi-1", "99.00")], po_id="c", status=POStatus.PENDING_APPROVAL
        )
        enc, spent = registry.committed_by_budget_item()["bi-1"]
        assert str(enc) == "15.00"
        assert str(spent) == "7.00"
