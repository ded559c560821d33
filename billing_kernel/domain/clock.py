"""
Injectable time source.

Services take a ``Clock`` instead of calling ``datetime.now()``: issue
dates, default due dates, the year in invoice numbers, overdue checks and
cache expiry all read from it.  ``SystemClock`` is the only implementation
that touches the real system time.
"""

import time
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

_DEFAULT_EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """``now()`` is timezone-aware; ``monotonic()`` is for measuring intervals only."""

    @abstractmethod
    def now(self) -> datetime: ...

    @abstractmethod
    def monotonic(self) -> float: ...

    def now_utc(self) -> datetime:
        return self.now().astimezone(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic(self) -> float:
        return time.monotonic()


class DeterministicClock(Clock):
    """
    Clock for tests.  Time stands still until the test moves it.

    Wall time and monotonic time are tracked separately: ``advance`` moves
    both, ``set_time`` jumps the wall clock and leaves elapsed time alone,
    just as a system clock adjustment would.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._wall = fixed_time or _DEFAULT_EPOCH
        self._elapsed = 0.0

    def now(self) -> datetime:
        return self._wall

    def monotonic(self) -> float:
        return self._elapsed

    def set_time(self, time: datetime) -> None:
        self._wall = time

    def advance(self, seconds: float | timedelta = 1) -> None:
        if isinstance(seconds, timedelta):
            seconds = seconds.total_seconds()
        if seconds < 0:
            raise ValueError("A deterministic clock cannot move backwards")
        self._wall += timedelta(seconds=seconds)
        self._elapsed += seconds

    def tick(self) -> datetime:
        """Advance one second and return the new time."""
        self.advance(1)
        return self.now()
