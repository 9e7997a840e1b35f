"""
Test Helper Functions - Builders for ledger test data

Builders produce projection models directly, for unit tests of handlers,
evaluators and matchers that do not need an engine. Flow helpers drive an
engine through the common PO paths.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from procurement_ledger.kernel.identity import Actor
from procurement_ledger.ledger.models import BudgetItem
from procurement_ledger.purchasing.models import POLineItem, POStatus, PurchaseOrder
from procurement_ledger.reconciliation.models import Receipt, ReceiptStatus

T0 = datetime(2025, 3, 3, 9, 0, 0, tzinfo=timezone.utc)


def line(description: str, amount: str, budget_item_id: str) -> dict[str, str]:
    """Line item dict as accepted by create_po / save_line_items"""
    return {"description": description, "amount": amount, "budget_item_id": budget_item_id}


def make_budget_item(
    budget_item_id: str = "bi-1",
    code: str = "5100",
    budget_amount: str = "1000.00",
    encumbered: str = "0.00",
    actual_spent: str = "0.00",
    fiscal_year: int = 2025,
    description: str = "Office supplies",
) -> BudgetItem:
    """
    Builder for a budget item projection row

    Example:
        >>> item = make_budget_item(budget_amount="500.00", encumbered="450.00")
        >>> item.available
        Decimal('50.00')
    """
    return BudgetItem(
        budget_item_id=budget_item_id,
        code=code,
        description=description,
        fiscal_year=fiscal_year,
        budget_amount=Decimal(budget_amount),
        encumbered=Decimal(encumbered),
        actual_spent=Decimal(actual_spent),
        created_at=T0,
        version=1,
    )


def make_po(
    lines: list[tuple[str, str]],
    po_id: str = "po-1",
    po_number: str = "PO-2025-001",
    status: POStatus = POStatus.DRAFT,
    requester_id: str = "alice",
    vendor_name: str = "Staples",
    vendor_id: str | None = None,
    po_date: date = date(2025, 3, 3),
    receipt_ids: list[str] | None = None,
    **extra: Any,
) -> PurchaseOrder:
    """
    Builder for a purchase order projection row

    Args:
        lines: [(budget_item_id, amount), ...]
    """
    return PurchaseOrder(
        po_id=po_id,
        po_number=po_number,
        po_date=po_date,
        vendor_id=vendor_id,
        vendor_name=vendor_name,
        requester_id=requester_id,
        status=status,
        line_items=[
            POLineItem(
                line_item_id=f"{po_id}-line-{i}",
                description=f"Line {i}",
                amount=Decimal(amount),
                budget_item_id=budget_item_id,
            )
            for i, (budget_item_id, amount) in enumerate(lines, start=1)
        ],
        receipt_ids=receipt_ids or [],
        created_at=T0,
        version=1,
        **extra,
    )


def make_receipt(
    receipt_id: str = "r-1",
    total_amount: str | None = "100.00",
    status: ReceiptStatus = ReceiptStatus.COMPLETED,
    vendor_id: str | None = None,
    merchant_name: str | None = None,
    receipt_date: date | None = None,
    po_id: str | None = None,
) -> Receipt:
    """Builder for a receipt projection row"""
    return Receipt(
        receipt_id=receipt_id,
        total_amount=Decimal(total_amount) if total_amount is not None else None,
        status=status,
        vendor_id=vendor_id,
        merchant_name=merchant_name,
        receipt_date=receipt_date,
        po_id=po_id,
        created_at=T0,
        version=1,
    )


def approved_po(engine, requester: Actor, approver: Actor, lines: list[dict[str, str]], **kwargs):
    """Create, submit and manually approve a PO; returns the approved PO"""
    po = engine.create_po(kwargs.pop("vendor_name", "Staples"), requester, line_items=lines, **kwargs)
    engine.submit_po(po.po_id, requester)
    return engine.transition_po(po.po_id, "APPROVED", approver)


def completed_po(engine, requester: Actor, approver: Actor, lines: list[dict[str, str]], **kwargs):
    """Approve then complete a PO; returns the completed PO"""
    po = approved_po(engine, requester, approver, lines, **kwargs)
    return engine.transition_po(po.po_id, "COMPLETED", approver)
