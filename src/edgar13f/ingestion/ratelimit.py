"""Request gates shared by every outbound EDGAR call."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from aiolimiter import AsyncLimiter


@runtime_checkable
class RateGate(Protocol):
    """Anything that can delay a request until it may be dispatched."""

    async def acquire(self) -> None: ...


class IntervalGate:
    """Enforces a fixed minimum interval between dispatched requests.

    Backed by an aiolimiter leaky bucket with capacity 1, so requests are
    spaced evenly at ``1 / requests_per_second`` instead of bursting up to
    the per-second ceiling. One instance is shared by all callers.
    """

    def __init__(self, requests_per_second: float) -> None:
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive")
        self.interval = 1.0 / requests_per_second
        self._limiter = AsyncLimiter(max_rate=1, time_period=self.interval)

    async def acquire(self) -> None:
        await self._limiter.acquire()


class NullGate:
    """Zero-delay gate for tests and offline replays."""

    async def acquire(self) -> None:
        return None
