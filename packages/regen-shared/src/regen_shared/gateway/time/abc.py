"""Clock abstraction so staleness and durations can be controlled in tests."""

from abc import ABC, abstractmethod
from datetime import datetime


class Time(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Return the current wall-clock time as a timezone-aware UTC datetime."""
        ...

    @abstractmethod
    def monotonic(self) -> float:
        """Return a monotonic clock reading in seconds, for measuring durations."""
        ...
