"""Fake clock for tests.

The fake never reads the system clock. Tests move it forward explicitly with
advance(), which moves both the wall clock and the monotonic reading.
"""

from datetime import UTC, datetime, timedelta

from regen_shared.gateway.time.abc import Time

DEFAULT_FAKE_NOW = datetime(2025, 11, 30, 12, 0, 0, tzinfo=UTC)


class FakeTime(Time):
    def __init__(self, *, current: datetime | None = None) -> None:
        self._current = current if current is not None else DEFAULT_FAKE_NOW
        self._monotonic = 0.0

    def now(self) -> datetime:
        return self._current

    def monotonic(self) -> float:
        return self._monotonic

    def advance(self, delta: timedelta) -> None:
        self._current = self._current + delta
        self._monotonic += delta.total_seconds()
