"""
Consumption Ledger — Injectable clock

Ledger operations never call ``datetime.now()`` directly; they receive a
Clock so that tests can pin "now" and check quota window boundaries.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current instant as a timezone-aware UTC datetime."""
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Test clock frozen at a given instant until advanced."""

    def __init__(self, fixed_time: datetime):
        if fixed_time.tzinfo is None:
            fixed_time = fixed_time.replace(tzinfo=timezone.utc)
        self._time = fixed_time

    def now(self) -> datetime:
        return self._time.astimezone(timezone.utc)

    def set_time(self, time: datetime) -> None:
        if time.tzinfo is None:
            time = time.replace(tzinfo=timezone.utc)
        self._time = time

    def advance(self, **delta) -> datetime:
        self._time = self._time + timedelta(**delta)
        return self.now()
