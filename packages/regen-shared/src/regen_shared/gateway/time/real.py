import time
from datetime import UTC, datetime

from regen_shared.gateway.time.abc import Time


class RealTime(Time):
    def now(self) -> datetime:
        return datetime.now(UTC)

    def monotonic(self) -> float:
        return time.monotonic()
