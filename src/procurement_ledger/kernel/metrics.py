"""
Prometheus metrics for the procurement ledger.

Counts what moves money (reservations, approvals, amendments) and what stops
it (insufficient budget, lock timeouts), plus command latency.
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram, start_http_server

# ============================================================================
# Event Store Metrics
# ============================================================================

events_appended_total = Counter(
    "procurement_events_appended_total",
    "Total number of events appended to the event store",
    ["stream_type", "event_type"],
)

events_loaded_total = Counter(
    "procurement_events_loaded_total",
    "Total number of events loaded from the event store",
    ["stream_type"],
)

stream_version_conflicts_total = Counter(
    "procurement_stream_version_conflicts_total",
    "Total number of optimistic locking version conflicts",
    ["stream_type"],
)

# ============================================================================
# Command Processing Metrics
# ============================================================================

command_duration_seconds = Histogram(
    "procurement_command_duration_seconds",
    "Duration of command processing in seconds",
    ["command_type"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

commands_processed_total = Counter(
    "procurement_commands_processed_total",
    "Total number of commands processed",
    ["command_type", "status"],  # status: success, failure
)

# ============================================================================
# Ledger Metrics
# ============================================================================

ledger_operations_total = Counter(
    "procurement_ledger_operations_total",
    "Ledger mutations applied (reserve, release, realize, reverse, adjust)",
    ["operation"],
)

insufficient_budget_total = Counter(
    "procurement_insufficient_budget_total",
    "Reservations refused because available balance was too low",
)

over_budget_warnings_total = Counter(
    "procurement_over_budget_warnings_total",
    "Allocation decreases or override approvals that left a budget item over budget",
)

budget_utilization_ratio = Gauge(
    "procurement_budget_utilization_ratio",
    "Committed (encumbered + actual) divided by budget amount",
    ["budget_item_code"],
)

lock_timeouts_total = Counter(
    "procurement_lock_timeouts_total",
    "Requests abandoned because a budget item or PO lock was not acquired in time",
)

# ============================================================================
# Purchase Order Metrics
# ============================================================================

po_transitions_total = Counter(
    "procurement_po_transitions_total",
    "Purchase order status transitions",
    ["from_status", "to_status"],
)

auto_approval_decisions_total = Counter(
    "procurement_auto_approval_decisions_total",
    "Auto-approval evaluations by outcome",
    ["reason_code"],
)

amendments_total = Counter(
    "procurement_amendments_total",
    "Budget amendments recorded",
    ["amendment_type"],
)

receipt_links_total = Counter(
    "procurement_receipt_links_total",
    "Receipt link and unlink operations",
    ["action"],
)

# ============================================================================
# System Metrics
# ============================================================================

projection_rebuild_duration_seconds = Histogram(
    "procurement_projection_rebuild_duration_seconds",
    "Duration of projection rebuild in seconds",
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0),
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_command_duration(command_type: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator to track command processing duration and outcome.

    Args:
        command_type: Type of command being processed

    Returns:
        Decorated function that tracks duration
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            status = "success"
            try:
                return func(*args, **kwargs)
            except Exception:
                status = "failure"
                raise
            finally:
                duration = time.perf_counter() - start
                command_duration_seconds.labels(command_type=command_type).observe(duration)
                commands_processed_total.labels(
                    command_type=command_type, status=status
                ).inc()

        return wrapper

    return decorator


def start_metrics_server(port: int = 9090) -> None:
    """
    Start Prometheus metrics HTTP server.

    Args:
        port: Port to listen on (default: 9090)
    """
    start_http_server(port)


def update_budget_utilization(code: str, budget_amount, committed) -> None:
    """
    Update the utilization gauge for one budget item.

    A zero budget with commitments reports 1.0 (fully used); with nothing
    committed it reports 0.
    """
    if budget_amount > 0:
        ratio = float(committed / budget_amount)
    else:
        ratio = 1.0 if committed > 0 else 0.0
    budget_utilization_ratio.labels(budget_item_code=code).set(ratio)


LEDGER_OPERATIONS = {
    "FundsReserved": "reserve",
    "FundsReleased": "release",
    "FundsRealized": "realize",
    "RealizationReversed": "reverse",
    "AllocationAdjusted": "adjust",
}


def record_ledger_commit(event_types: list[str], warning_count: int = 0) -> None:
    """
    Count the ledger mutations and over-budget warnings of a committed request.

    Args:
        event_types: Event types of the stored batch; non-ledger types are ignored
        warning_count: NowOverBudget warnings the request produced
    """
    for event_type in event_types:
        operation = LEDGER_OPERATIONS.get(event_type)
        if operation is not None:
            ledger_operations_total.labels(operation=operation).inc()
    if warning_count:
        over_budget_warnings_total.inc(warning_count)
