"""
Budget Ledger Triggers - automatic checks over ledger state

- Threshold approach: after a commit, any budget item whose committed share
  of its ceiling crossed the warning ratio produces a notification event.
  These go out on the bus and are not stored.
- Drift detection: recompute what encumbered / actual_spent should be from
  the purchase orders and report items that disagree. This should never
  find anything; if it does, something bypassed the ledger.
"""

from datetime import datetime
from decimal import Decimal

from procurement_ledger.kernel.events import Event, create_event
from procurement_ledger.kernel.ids import generate_id
from procurement_ledger.ledger.events import STREAM_TYPE, BudgetThresholdApproached
from procurement_ledger.ledger.models import BudgetItem, LedgerDiscrepancy


def evaluate_threshold_approach(
    before: dict[str, BudgetItem],
    after: dict[str, BudgetItem],
    warning_ratio: Decimal,
    now: datetime,
    command_id: str,
) -> list[Event]:
    """
    Notification events for items that crossed `warning_ratio`

    Args:
        before: Items as they were before the request (by id)
        after: The same items after the request
        warning_ratio: e.g. Decimal("0.9")
        now: Current time
        command_id: Request that caused the change

    Returns:
        BudgetThresholdApproached events (unversioned notifications)
    """
    events: list[Event] = []
    for budget_item_id, item in after.items():
        previous = before.get(budget_item_id)
        old_ratio = previous.utilization() if previous is not None else Decimal("0")
        new_ratio = item.utilization()
        if old_ratio < warning_ratio <= new_ratio:
            payload = BudgetThresholdApproached(
                budget_item_id=budget_item_id,
                code=item.code,
                ratio=new_ratio.quantize(Decimal("0.0001")),
                warning_ratio=warning_ratio,
                available=item.available,
                detected_at=now,
            ).model_dump(mode="json")
            events.append(
                create_event(
                    event_id=generate_id(),
                    stream_id=budget_item_id,
                    stream_type=STREAM_TYPE,
                    event_type="BudgetThresholdApproached",
                    occurred_at=now,
                    command_id=command_id,
                    payload=payload,
                    version=max(item.version, 1),
                )
            )
    return events


def detect_ledger_drift(
    budget_items: list[BudgetItem],
    expected: dict[str, tuple[Decimal, Decimal]],
) -> list[LedgerDiscrepancy]:
    """
    Compare stored balances with balances derived from purchase orders

    Args:
        budget_items: Items to check
        expected: budget_item_id -> (encumbered, actual_spent) from PO states

    Returns:
        One LedgerDiscrepancy per item that disagrees
    """
    discrepancies = []
    zero = (Decimal("0"), Decimal("0"))
    for item in budget_items:
        expected_encumbered, expected_spent = expected.get(item.budget_item_id, zero)
        if item.encumbered != expected_encumbered or item.actual_spent != expected_spent:
            discrepancies.append(
                LedgerDiscrepancy(
                    budget_item_id=item.budget_item_id,
                    code=item.code,
                    stored_encumbered=item.encumbered,
                    expected_encumbered=expected_encumbered,
                    stored_actual_spent=item.actual_spent,
                    expected_actual_spent=expected_spent,
                )
            )
    return discrepancies
