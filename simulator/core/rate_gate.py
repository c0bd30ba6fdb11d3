from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable


def remaining_delay(elapsed: float, period: float = 1.0) -> float:
    """Time left in the period after a batch that took ``elapsed`` seconds.

    Never negative: an overrun batch gets zero delay and the overrun is not
    carried into the next batch.
    """
    return max(0.0, period - elapsed)


class RateGate:
    """Paces one worker to ``quota`` units of work per period.

    Usage::

        gate.begin()
        for _ in range(gate.quota):
            do_one_unit()
        await gate.wait()

    Each gate belongs to exactly one worker; waiting only suspends the caller.
    """

    def __init__(
        self,
        quota: int,
        *,
        period_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if quota < 1:
            raise ValueError("quota must be >= 1")
        if period_seconds <= 0:
            raise ValueError("period_seconds must be > 0")

        self._quota = quota
        self._period = period_seconds
        self._clock = clock
        self._sleep = sleep
        self._batch_started: float | None = None

    @property
    def quota(self) -> int:
        return self._quota

    def begin(self) -> None:
        self._batch_started = self._clock()

    async def wait(self) -> float:
        """Sleep out the rest of the period; return the delay applied."""
        if self._batch_started is None:
            raise RuntimeError("RateGate.wait() called before begin()")

        elapsed = self._clock() - self._batch_started
        self._batch_started = None

        delay = remaining_delay(elapsed, self._period)
        if delay > 0:
            await self._sleep(delay)
        return delay
