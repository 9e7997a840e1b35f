"""
Test bus.py behaviour and logging integration.

Verifies that the InProcessBus delivers committed events to subscribers,
isolates failing subscribers, and logs with structured logging.
"""

from datetime import datetime, timezone

from procurement_ledger.kernel.bus import InProcessBus
from procurement_ledger.kernel.events import Event, create_event
from procurement_ledger.kernel.logging import configure_logging


def _event(event_type: str = "PurchaseOrderApproved", event_id: str = "evt-1") -> Event:
    return create_event(
        event_id=event_id,
        stream_id="po-1",
        stream_type="purchase_order",
        event_type=event_type,
        occurred_at=datetime(2025, 3, 3, tzinfo=timezone.utc),
        command_id="cmd-1",
        version=1,
    )


class TestBusLogging:
    """Test bus delivery and logging integration."""

    def setup_method(self) -> None:
        configure_logging(json_output=False, log_level="DEBUG")

    def test_subscription_registered(self) -> None:
        bus = InProcessBus()
        bus.subscribe("PurchaseOrderApproved", lambda e: None)
        assert bus.get_event_types() == ["PurchaseOrderApproved"]

    def test_handlers_receive_matching_events_in_order(self) -> None:
        bus = InProcessBus()
        received: list[str] = []
        bus.subscribe("PurchaseOrderApproved", lambda e: received.append(f"first:{e.event_id}"))
        bus.subscribe("PurchaseOrderApproved", lambda e: received.append(f"second:{e.event_id}"))
        bus.subscribe("FundsReserved", lambda e: received.append("wrong"))

        bus.publish_event(_event())

        assert received == ["first:evt-1", "second:evt-1"]

    def test_wildcard_receives_everything(self) -> None:
        bus = InProcessBus()
        received: list[str] = []
        bus.subscribe("*", lambda e: received.append(e.event_type))

        bus.publish_events([_event("FundsReserved", "e1"), _event("PurchaseOrderApproved", "e2")])

        assert received == ["FundsReserved", "PurchaseOrderApproved"]

    def test_failing_handler_is_isolated(self) -> None:
        bus = InProcessBus()
        received: list[str] = []

        def broken(event: Event) -> None:
            raise RuntimeError("smtp unavailable")

        bus.subscribe("PurchaseOrderApproved", broken)
        bus.subscribe("PurchaseOrderApproved", lambda e: received.append(e.event_id))

        # Should log the failure and keep going
        bus.publish_event(_event())

        assert received == ["evt-1"]

    def test_no_handlers_is_a_noop(self) -> None:
        InProcessBus().publish_event(_event("BudgetThresholdApproached"))

    def test_unsubscribe(self) -> None:
        bus = InProcessBus()
        received: list[str] = []

        def handler(event: Event) -> None:
            received.append(event.event_id)

        bus.subscribe("PurchaseOrderApproved", handler)
        bus.unsubscribe("PurchaseOrderApproved", handler)
        bus.unsubscribe("PurchaseOrderApproved", handler)
        bus.publish_event(_event())

        assert received == []
        assert bus.get_event_types() == []

    def test_clear(self) -> None:
        bus = InProcessBus()
        bus.subscribe("PurchaseOrderApproved", lambda e: None)
        bus.clear()
        assert bus.get_event_types() == []
