"""
Event envelope for the ledger's append-only log

Every change to a budget item, amendment, purchase order or receipt link
is recorded as an immutable event. Current state is whatever you get by
replaying them in order.

Fun fact: Medieval exchequer clerks recorded debts on notched "tally sticks"
split in two, one half for each party. You could not edit a tally without
the other half giving you away - an append-only log in hazelwood.
"""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator

StreamType = Literal["budget_item", "amendment", "purchase_order", "receipt"]


class Event(BaseModel):
    """
    Stored envelope around one domain event

    stream_id + version gives optimistic locking per aggregate. command_id
    groups every event one request wrote, across streams, and is the
    idempotency key: a replayed request gets its original events back.

    The domain payload is JSON-compatible data (money as strings); the
    typed payload models live in each module's events.py.
    """

    event_id: str = Field(..., description="Unique, time-ordered event id")
    stream_id: str = Field(
        ..., description="Aggregate id: budget item, amendment, PO or receipt"
    )
    stream_type: StreamType = Field(..., description="Aggregate kind")
    event_type: str = Field(
        ..., description="What happened: 'FundsReserved', 'PurchaseOrderApproved', ..."
    )
    occurred_at: datetime = Field(..., description="When it happened, normalized to UTC")
    actor_id: str | None = Field(
        default=None, description="Acting user, or 'system' for auto-approval"
    )
    command_id: str = Field(..., description="Request that wrote this event")
    payload: dict = Field(default_factory=dict, description="JSON-serializable event data")
    version: int = Field(..., ge=1, description="Stream version after this event")

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "event_id": "01908e9a-3b87-7000-8000-123456789abc",
                    "stream_id": "bi-travel-01",
                    "stream_type": "budget_item",
                    "event_type": "FundsReserved",
                    "occurred_at": "2025-01-15T10:30:00Z",
                    "actor_id": "user-alice",
                    "command_id": "cmd-123",
                    "payload": {"budget_item_id": "bi-travel-01", "amount": "400.00"},
                    "version": 2,
                }
            ]
        },
    }

    @field_validator("occurred_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        # Stored as ISO text and range-queried as text, so one offset only
        if v.tzinfo is None:
            raise ValueError("occurred_at must be timezone-aware")
        return v.astimezone(timezone.utc)


def create_event(
    *,
    event_id: str,
    stream_id: str,
    stream_type: StreamType,
    event_type: str,
    occurred_at: datetime,
    command_id: str,
    version: int,
    actor_id: str | None = None,
    payload: dict | None = None,
) -> Event:
    """Build an event with every field passed by name"""
    return Event(
        event_id=event_id,
        stream_id=stream_id,
        stream_type=stream_type,
        event_type=event_type,
        occurred_at=occurred_at,
        actor_id=actor_id,
        command_id=command_id,
        payload=payload or {},
        version=version,
    )
