"""
Tests for receipt <-> purchase order match suggestions
"""

from datetime import date
from decimal import Decimal

from procurement_ledger.kernel.policy import ProcurementPolicy
from procurement_ledger.purchasing.models import POStatus
from procurement_ledger.reconciliation.matching import (
    score_receipt_against_po,
    score_receipt_against_remaining,
    suggest_pos_for_receipt,
    suggest_receipts_for_po,
)
from tests.helpers import make_po, make_receipt

POLICY = ProcurementPolicy()


def _po(amount: str = "100.00", **kwargs):
    kwargs.setdefault("status", POStatus.APPROVED)
    kwargs.setdefault("vendor_id", "v-1")
    return make_po([("bi-1", amount)], **kwargs)


class TestScoring:
    def test_perfect_match(self) -> None:
        receipt = make_receipt(vendor_id="v-1", receipt_date=date(2025, 3, 4))
        score, reasons = score_receipt_against_po(receipt, _po(), POLICY)
        assert score == 100
        assert reasons == ["Vendor match", "Amount matches", "Date within 3 days"]

    def test_close_amount(self) -> None:
        receipt = make_receipt(total_amount="103.00")
        score, reasons = score_receipt_against_po(receipt, _po(vendor_id=None), POLICY)
        assert (score, reasons) == (20, ["Amount close"])

    def test_amount_out_of_range(self) -> None:
        receipt = make_receipt(total_amount="150.00")
        assert score_receipt_against_po(receipt, _po(vendor_id=None), POLICY) == (0, [])

    def test_merchant_name_only_without_vendor_id(self) -> None:
        po = _po("999.00", vendor_id=None, vendor_name="Staples Inc")
        receipt = make_receipt(merchant_name="STAPLES")
        assert score_receipt_against_po(receipt, po, POLICY) == (
            30,
            ["Vendor name similar to merchant"],
        )

        with_id = make_receipt(merchant_name="STAPLES", vendor_id="v-9")
        assert score_receipt_against_po(with_id, po, POLICY) == (0, [])

    def test_date_bands(self) -> None:
        po = _po("999.00", vendor_id=None)
        for day, expected in [(10, 15), (20, 10), (3, 20)]:
            receipt = make_receipt(total_amount=None, receipt_date=date(2025, 3, day))
            assert score_receipt_against_po(receipt, po, POLICY)[0] == expected
        late = make_receipt(total_amount=None, receipt_date=date(2025, 4, 10))
        assert score_receipt_against_po(late, po, POLICY) == (0, [])

    def test_already_receipted_penalty(self) -> None:
        po = _po(receipt_ids=["r-0"])
        score, reasons = score_receipt_against_po(make_receipt(vendor_id="v-1"), po, POLICY)
        assert score == 60
        assert reasons[-1] == "Already has linked receipts"

    def test_penalty_needs_another_reason(self) -> None:
        po = _po("999.00", vendor_id=None, receipt_ids=["r-0"])
        assert score_receipt_against_po(make_receipt(), po, POLICY) == (0, [])

    def test_remaining_amount(self) -> None:
        po = _po("300.00", vendor_id=None)
        receipt = make_receipt(total_amount="100.00")
        assert score_receipt_against_remaining(receipt, po, Decimal("200.00"), POLICY) == (
            40,
            ["Amount matches remaining"],
        )
        assert score_receipt_against_remaining(receipt, po, Decimal("300.00"), POLICY) == (0, [])


class TestSuggestions:
    def test_only_approved_and_completed_pos(self) -> None:
        receipt = make_receipt(vendor_id="v-1")
        pos = [
            _po(po_id="a", po_number="PO-2025-001", status=POStatus.DRAFT),
            _po(po_id="b", po_number="PO-2025-002", status=POStatus.PENDING_APPROVAL),
            _po(po_id="c", po_number="PO-2025-003", status=POStatus.COMPLETED),
            _po(po_id="d", po_number="PO-2025-004", status=POStatus.CANCELLED),
        ]
        assert [s.candidate_id for s in suggest_pos_for_receipt(receipt, pos, POLICY)] == ["c"]

    def test_ranked_and_zero_scores_dropped(self) -> None:
        receipt = make_receipt(vendor_id="v-1", total_amount="100.00")
        pos = [
            _po("100.00", po_id="exact", po_number="PO-2025-001"),
            _po("500.00", po_id="vendor", po_number="PO-2025-002"),
            _po("500.00", po_id="none", po_number="PO-2025-003", vendor_id="v-2"),
        ]
        suggestions = suggest_pos_for_receipt(receipt, pos, POLICY)
        assert [s.candidate_id for s in suggestions] == ["exact", "vendor"]
        assert [s.score for s in suggestions] == [80, 40]

    def test_limit(self) -> None:
        receipt = make_receipt(vendor_id="v-1")
        pos = [_po(po_id=f"po-{i}", po_number=f"PO-2025-{i:03d}") for i in range(10)]
        policy = ProcurementPolicy(match_max_suggestions=3)
        assert len(suggest_pos_for_receipt(receipt, pos, policy)) == 3

    def test_receipts_for_po_skip_linked(self) -> None:
        po = _po("100.00")
        receipts = [
            make_receipt("r-1", vendor_id="v-1", merchant_name="Staples"),
            make_receipt("r-2", vendor_id="v-1", po_id="other"),
            make_receipt("r-3", total_amount="5.00"),
        ]
        suggestions = suggest_receipts_for_po(po, receipts, Decimal("0.00"), POLICY)
        assert [(s.candidate_id, s.label, s.score) for s in suggestions] == [("r-1", "Staples", 80)]
