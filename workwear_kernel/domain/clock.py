"""
Injected time source for order dates and approval stamps.

Services take a ``Clock`` instead of calling ``datetime.now()`` so a test
can pin the moment an order was placed or approved and assert on it.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

_DEFAULT_START = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC timestamps."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Every ``now()`` returns the same instant until the test moves it with
    ``advance()``.  Naive start times are read as UTC.
    """

    def __init__(self, fixed_time: datetime | None = None):
        start = fixed_time or _DEFAULT_START
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._current = start

    def now(self) -> datetime:
        return self._current

    def advance(self, delta: timedelta | float = 1) -> datetime:
        """Move forward by ``delta`` (a timedelta or a number of seconds)."""
        if not isinstance(delta, timedelta):
            delta = timedelta(seconds=delta)
        if delta < timedelta(0):
            raise ValueError("DeterministicClock cannot move backwards")
        self._current += delta
        return self._current
