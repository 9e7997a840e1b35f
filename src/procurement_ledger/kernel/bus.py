"""
In-process Event Bus - the notification hook

After a request commits, its events are published here. Subscribers
(email senders, dashboards, audit mirrors) register per event type, or
for every event with "*". Delivery is fire-and-forget: a failing
subscriber is logged and skipped, and can never undo a committed
transition.

Fun fact: This is the "observer" pattern. Swapping in Kafka or NATS later
only changes this file, not the ledger.
"""

from collections import defaultdict
from collections.abc import Callable

from procurement_ledger.kernel.events import Event
from procurement_ledger.kernel.logging import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[Event], None]

ALL_EVENTS = "*"


class InProcessBus:
    """
    Simple synchronous in-process event bus

    Handlers run in registration order on the publishing thread.
    """

    def __init__(self) -> None:
        self._event_handlers: defaultdict[str, list[EventHandler]] = defaultdict(list)

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """
        Register an event handler (can have multiple per event type)

        Args:
            event_type: Type of event to handle (e.g., "PurchaseOrderApproved"),
                or "*" for every event
            handler: Callable receiving the committed event
        """
        self._event_handlers[event_type].append(handler)
        logger.debug(
            "Event handler registered",
            event_type=event_type,
            total_handlers=len(self._event_handlers[event_type]),
        )

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        """Remove a previously registered handler (no-op if absent)"""
        handlers = self._event_handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def publish_event(self, event: Event) -> None:
        """
        Publish an event to all registered handlers

        Failures are caught and logged so one broken subscriber neither
        blocks the others nor reaches the caller.
        """
        handlers = [
            *self._event_handlers.get(event.event_type, []),
            *self._event_handlers.get(ALL_EVENTS, []),
        ]

        if not handlers:
            return

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    event_type=event.event_type,
                    event_id=event.event_id,
                    stream_id=event.stream_id,
                    error=str(e),
                    exc_info=True,
                )

    def publish_events(self, events: list[Event]) -> None:
        """Publish multiple events in order"""
        for event in events:
            self.publish_event(event)

    def get_event_types(self) -> list[str]:
        """List event types that have at least one subscriber"""
        return [k for k, v in self._event_handlers.items() if v]

    def clear(self) -> None:
        """Remove all handlers (useful for testing)"""
        self._event_handlers.clear()
