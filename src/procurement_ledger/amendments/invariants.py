"""
Amendment Invariants - pure checks for ceiling changes
"""

from procurement_ledger.kernel.errors import ValidationError
from procurement_ledger.ledger.models import BudgetItem


def validate_same_fiscal_year(source: BudgetItem, destination: BudgetItem) -> None:
    """
    Raises:
        ValidationError: Transfers stay inside one fiscal year
    """
    if source.fiscal_year != destination.fiscal_year:
        raise ValidationError(
            f"Cannot transfer between different fiscal years "
            f"({source.code}: {source.fiscal_year}, {destination.code}: "
            f"{destination.fiscal_year})",
            field="to_budget_item_id",
        )


def validate_distinct_items(from_budget_item_id: str, to_budget_item_id: str | None) -> None:
    if not to_budget_item_id:
        raise ValidationError(
            "Destination budget item is required for transfers", field="to_budget_item_id"
        )
    if from_budget_item_id == to_budget_item_id:
        raise ValidationError(
            "Cannot transfer a budget item to itself", field="to_budget_item_id"
        )
