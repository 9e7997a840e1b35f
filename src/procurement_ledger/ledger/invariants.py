"""
Budget Ledger Invariants - pure checks on budget item balances

These functions never mutate anything. They raise the domain error that
explains what would go wrong.
"""

from decimal import Decimal

from procurement_ledger.kernel.errors import (
    BudgetItemInUse,
    BudgetItemNotFound,
    DuplicateBudgetItemCode,
    InsufficientBudget,
    InvariantViolation,
    ValidationError,
)
from procurement_ledger.ledger.models import BudgetItem


def validate_budget_item_exists(
    budget_item_id: str, budget_items: dict[str, BudgetItem]
) -> BudgetItem:
    """
    Look up a live budget item

    Raises:
        BudgetItemNotFound: Unknown or deleted
    """
    item = budget_items.get(budget_item_id)
    if item is None or item.deleted:
        raise BudgetItemNotFound(budget_item_id)
    return item


def validate_code_unique(code: str, budget_items: dict[str, BudgetItem]) -> None:
    """Codes are compared case-insensitively among live items"""
    wanted = code.strip().upper()
    for item in budget_items.values():
        if not item.deleted and item.code.upper() == wanted:
            raise DuplicateBudgetItemCode(code)


def validate_positive_amount(amount: Decimal, field: str = "amount") -> None:
    if amount <= 0:
        raise ValidationError(f"{field} must be greater than zero (got {amount})", field=field)


def validate_can_reserve(item: BudgetItem, amount: Decimal) -> None:
    """
    Reservation must leave available >= 0

    Raises:
        InsufficientBudget: With the item's code, requested and available
    """
    if item.available - amount < 0:
        raise InsufficientBudget(
            budget_item_id=item.budget_item_id,
            code=item.code,
            requested=amount,
            available=item.available,
        )


def validate_can_realize(item: BudgetItem, amount: Decimal) -> None:
    """
    Realizing more than is encumbered means a reservation was lost

    Raises:
        InvariantViolation: amount > encumbered
    """
    if amount > item.encumbered:
        raise InvariantViolation(
            f"Cannot realize {amount} on {item.code}: only {item.encumbered} encumbered",
            budget_item_id=item.budget_item_id,
        )


def validate_can_reverse_realization(item: BudgetItem, amount: Decimal) -> None:
    """
    Raises:
        InvariantViolation: amount > actual_spent
    """
    if amount > item.actual_spent:
        raise InvariantViolation(
            f"Cannot reverse {amount} on {item.code}: only {item.actual_spent} spent",
            budget_item_id=item.budget_item_id,
        )


def validate_ceiling_non_negative(item: BudgetItem, delta: Decimal) -> None:
    """
    Raises:
        ValidationError: budget_amount + delta < 0
    """
    if item.budget_amount + delta < 0:
        raise ValidationError(
            f"Budget item {item.code} ceiling would become "
            f"{item.budget_amount + delta} (current {item.budget_amount})",
            field="amount",
        )


def validate_balances_non_negative(item: BudgetItem) -> None:
    """
    Last line of defense before events leave a ledger transaction

    Raises:
        InvariantViolation: encumbered or actual_spent below zero
    """
    if item.encumbered < 0 or item.actual_spent < 0:
        raise InvariantViolation(
            f"Budget item {item.code} has negative balances: encumbered="
            f"{item.encumbered}, actual_spent={item.actual_spent}",
            budget_item_id=item.budget_item_id,
        )


def validate_not_in_use(item: BudgetItem, open_po_numbers: list[str]) -> None:
    """
    Raises:
        BudgetItemInUse: Non-terminal POs still reference the item
    """
    if open_po_numbers:
        raise BudgetItemInUse(item.budget_item_id, item.code, sorted(open_po_numbers))
