"""
Clock abstraction

Approval, void and amendment timestamps, default PO dates and the year in
a PO number all come from an injected clock, so tests can pin "now" and
date-proximity matching stays reproducible. Timestamps are always UTC.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Protocol


class TimeProvider(Protocol):
    def now(self) -> datetime:
        """Current instant, timezone-aware UTC"""
        ...

    def today(self) -> date:
        """Current UTC calendar date"""
        ...


class RealTimeProvider:
    """System clock"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class TestTimeProvider:
    """
    Frozen clock for tests

    Starts at a fixed instant and only moves when told to. Naive datetimes
    are rejected so every stored timestamp carries its offset.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, initial_time: datetime | None = None) -> None:
        self._current_time = _require_aware(
            initial_time or datetime(2025, 1, 1, tzinfo=timezone.utc)
        )

    def now(self) -> datetime:
        return self._current_time

    def today(self) -> date:
        return self._current_time.date()

    def set_time(self, dt: datetime) -> None:
        self._current_time = _require_aware(dt)

    def advance(self, delta: timedelta) -> None:
        self._current_time += delta

    def advance_days(self, days: int) -> None:
        self.advance(timedelta(days=days))


def _require_aware(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        raise ValueError("Clock times must be timezone-aware")
    return dt.astimezone(timezone.utc)
