"""
Injectable time source for workflow timestamps.

The instance manager and decision processor stamp ``started_at`` and
``completed_at`` through a ``Clock`` passed to their constructors.
``SystemClock`` is the only place wall-clock time enters the engine.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC timestamps."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen clock for tests.

    Repeated ``now()`` calls return the same instant; time moves only
    through ``advance``, ``tick`` or ``set_time``.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or DEFAULT_EPOCH

    def now(self) -> datetime:
        return self._current

    def set_time(self, instant: datetime) -> None:
        self._current = instant

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """Step one second forward and return the new instant."""
        self.advance()
        return self._current
