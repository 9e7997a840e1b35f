"""
Test logging, metrics and retry infrastructure.

Covers structured logging configuration, correlation IDs, context redaction,
Prometheus metrics emitted by the event store and ledger, and the tenacity
retry decorators.
"""

import sqlite3
import tempfile
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from structlog.testing import capture_logs

from procurement_ledger.kernel.errors import InsufficientBudget, InvariantViolation
from procurement_ledger.kernel.event_store import SQLiteEventStore
from procurement_ledger.kernel.events import create_event
from procurement_ledger.kernel.logging import (
    LogOperation,
    configure_logging,
    get_correlation_id,
    get_logger,
    is_production,
    redact_context,
    set_correlation_id,
)
from procurement_ledger.kernel.metrics import (
    budget_utilization_ratio,
    commands_processed_total,
    events_appended_total,
    events_loaded_total,
    insufficient_budget_total,
    ledger_operations_total,
    over_budget_warnings_total,
    track_command_duration,
    update_budget_utilization,
)
from procurement_ledger.kernel.retry import is_transient_sqlite_error, retry_on_sqlite_lock
from tests.helpers import line


def _event(event_id: str = "evt-1", stream_id: str = "stream-1", version: int = 1):
    return create_event(
        event_id=event_id,
        stream_id=stream_id,
        stream_type="receipt",
        event_type="TestEvent",
        occurred_at=datetime.now(timezone.utc),
        command_id=f"cmd-{event_id}",
        actor_id="actor-1",
        payload={"test": "data"},
        version=version,
    )


class TestLoggingFramework:
    """Test structured logging framework."""

    def test_configure_logging_console(self) -> None:
        configure_logging(json_output=False, log_level="DEBUG")
        get_logger("test").info("Test message", key="value")

    def test_configure_logging_json(self) -> None:
        configure_logging(json_output=True, log_level="INFO")
        get_logger("test").info("Test message", key="value")

    def test_correlation_id(self) -> None:
        set_correlation_id("req-123")
        assert get_correlation_id() == "req-123"

        set_correlation_id("")
        generated = get_correlation_id()
        assert len(generated) == 22
        assert get_correlation_id() == generated

    def test_redact_context(self) -> None:
        redacted = redact_context(
            {"actor_id": "alice", "amount": "400.00", "po_id": "po-1", "operation": "submit_po"}
        )
        assert redacted == {
            "actor_id": "***REDACTED***",
            "amount": "***REDACTED***",
            "po_id": "po-1",
            "operation": "submit_po",
        }

    def test_is_production(self, monkeypatch) -> None:
        monkeypatch.setenv("ENVIRONMENT", "Production")
        assert is_production()
        monkeypatch.delenv("ENVIRONMENT")
        assert not is_production()

    def test_log_operation_context_manager(self) -> None:
        configure_logging(json_output=False, log_level="INFO")
        with LogOperation(get_logger("test"), "test_operation", actor_id="alice") as op:
            assert op.start_time > 0

    def test_log_operation_with_exception(self) -> None:
        configure_logging(json_output=False, log_level="INFO")
        with pytest.raises(ValueError, match="Test error"):
            with LogOperation(get_logger("test"), "failing_operation"):
                raise ValueError("Test error")

    def test_outermost_operation_scopes_correlation_id(self) -> None:
        set_correlation_id("")

        with LogOperation(get_logger("test"), "transition_po"):
            outer = get_correlation_id()
            with LogOperation(get_logger("test"), "reserve"):
                assert get_correlation_id() == outer

        assert len(outer) == 22
        assert get_correlation_id() != outer

    def test_caller_supplied_correlation_id_kept(self) -> None:
        set_correlation_id("req-from-header")

        with LogOperation(get_logger("test"), "submit_po"):
            assert get_correlation_id() == "req-from-header"

        assert get_correlation_id() == "req-from-header"
        set_correlation_id("")

    @pytest.mark.parametrize(
        "error, level, suffix",
        [
            (InsufficientBudget("bi-1", "5100", Decimal("10"), Decimal("5")), "warning", "rejected"),
            (InvariantViolation("encumbered went negative"), "critical", "broke a ledger invariant"),
            (RuntimeError("disk on fire"), "error", "failed"),
        ],
    )
    def test_failure_severity(self, error: Exception, level: str, suffix: str) -> None:
        with capture_logs() as logs:
            with pytest.raises(type(error)):
                with LogOperation(get_logger("severity"), "approve_po", po_id="po-1"):
                    raise error

        assert logs[-1]["log_level"] == level
        assert logs[-1]["event"] == f"approve_po {suffix}"
        assert logs[-1]["po_id"] == "po-1"


class TestMetrics:
    """Test Prometheus metrics collection."""

    def test_events_appended_metric(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SQLiteEventStore(Path(tmpdir) / "test.db")
            before = events_appended_total.labels(
                stream_type="receipt", event_type="TestEvent"
            )._value.get()

            store.append("stream-1", 0, [_event()])

            after = events_appended_total.labels(
                stream_type="receipt", event_type="TestEvent"
            )._value.get()
            assert after == before + 1

    def test_events_loaded_metric(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SQLiteEventStore(Path(tmpdir) / "test.db")
            store.append("stream-1", 0, [_event()])
            before = events_loaded_total.labels(stream_type="receipt")._value.get()

            store.load_stream("stream-1")

            after = events_loaded_total.labels(stream_type="receipt")._value.get()
            assert after > before

    def test_track_command_duration_counts_outcomes(self) -> None:
        @track_command_duration("test_command")
        def command(fail: bool) -> str:
            if fail:
                raise RuntimeError("boom")
            return "ok"

        success = commands_processed_total.labels(command_type="test_command", status="success")
        failure = commands_processed_total.labels(command_type="test_command", status="failure")
        ok_before, fail_before = success._value.get(), failure._value.get()

        assert command(False) == "ok"
        with pytest.raises(RuntimeError):
            command(True)

        assert success._value.get() == ok_before + 1
        assert failure._value.get() == fail_before + 1

    @pytest.mark.parametrize(
        "budget,committed,expected",
        [("1000", "250", 0.25), ("0", "0", 0.0), ("0", "10", 1.0), ("100", "150", 1.5)],
    )
    def test_budget_utilization_gauge(self, budget: str, committed: str, expected: float) -> None:
        update_budget_utilization("TEST-GAUGE", Decimal(budget), Decimal(committed))
        gauge = budget_utilization_ratio.labels(budget_item_code="TEST-GAUGE")
        assert gauge._value.get() == pytest.approx(expected)


class TestLedgerMetrics:
    """Ledger counters move only when a request commits"""

    def test_refused_approval_counts_nothing_reserved(
        self, engine, office_supplies, travel, requester, approver
    ) -> None:
        reserve = ledger_operations_total.labels(operation="reserve")
        reserved_before = reserve._value.get()
        refused_before = insufficient_budget_total._value.get()

        po = engine.create_po(
            "Staples",
            requester,
            line_items=[
                line("Paper", "400.00", office_supplies.budget_item_id),
                line("Conference", "2500.00", travel.budget_item_id),
            ],
        )
        engine.submit_po(po.po_id, requester)
        with pytest.raises(InsufficientBudget):
            engine.transition_po(po.po_id, "APPROVED", approver)

        assert reserve._value.get() == reserved_before
        assert insufficient_budget_total._value.get() == refused_before + 1
        assert engine.get_budget_item(office_supplies.budget_item_id).encumbered == Decimal("0")

    def test_committed_approval_counts_each_reservation(
        self, engine, office_supplies, travel, requester, approver
    ) -> None:
        reserve = ledger_operations_total.labels(operation="reserve")
        before = reserve._value.get()

        po = engine.create_po(
            "Staples",
            requester,
            line_items=[
                line("Paper", "400.00", office_supplies.budget_item_id),
                line("Conference", "500.00", travel.budget_item_id),
            ],
        )
        engine.submit_po(po.po_id, requester)
        engine.transition_po(po.po_id, "APPROVED", approver)

        assert reserve._value.get() == before + 2

    def test_override_counts_one_over_budget_warning(
        self, engine, office_supplies, requester, finance
    ) -> None:
        before = over_budget_warnings_total._value.get()

        po = engine.create_po(
            "Staples",
            requester,
            line_items=[line("Desk", "1200.00", office_supplies.budget_item_id)],
        )
        engine.submit_po(po.po_id, requester)
        approved = engine.transition_po(po.po_id, "APPROVED", finance, override=True)

        assert over_budget_warnings_total._value.get() == before + 1
        assert approved.warnings[0].available == Decimal("-200.00")


class TestRetryLogic:
    """Test retry logic with exponential backoff."""

    def test_retries_sqlite_lock_then_succeeds(self) -> None:
        attempts = []

        @retry_on_sqlite_lock(max_attempts=3, min_wait_ms=1, max_wait_ms=2)
        def flaky() -> str:
            attempts.append(1)
            if len(attempts) < 3:
                raise sqlite3.OperationalError("database is locked")
            return "success"

        assert flaky() == "success"
        assert len(attempts) == 3

    def test_gives_up_and_reraises(self) -> None:
        @retry_on_sqlite_lock(max_attempts=2, min_wait_ms=1, max_wait_ms=2)
        def always_locked() -> None:
            raise sqlite3.OperationalError("database is locked")

        with pytest.raises(sqlite3.OperationalError):
            always_locked()

    def test_domain_errors_not_retried(self) -> None:
        attempts = []

        @retry_on_sqlite_lock(max_attempts=5, min_wait_ms=1, max_wait_ms=2)
        def invalid() -> None:
            attempts.append(1)
            raise ValueError("not transient")

        with pytest.raises(ValueError):
            invalid()
        assert len(attempts) == 1

    def test_schema_errors_not_retried(self) -> None:
        attempts = []

        @retry_on_sqlite_lock(max_attempts=5, min_wait_ms=1, max_wait_ms=2)
        def broken() -> None:
            attempts.append(1)
            raise sqlite3.OperationalError("no such table: events")

        with pytest.raises(sqlite3.OperationalError, match="no such table"):
            broken()
        assert len(attempts) == 1

    @pytest.mark.parametrize(
        "exc, transient",
        [
            (sqlite3.OperationalError("database is locked"), True),
            (sqlite3.OperationalError("Database is busy"), True),
            (sqlite3.OperationalError("disk I/O error"), False),
            (sqlite3.IntegrityError("UNIQUE constraint failed"), False),
        ],
    )
    def test_transient_classification(self, exc: Exception, transient: bool) -> None:
        assert is_transient_sqlite_error(exc) is transient
