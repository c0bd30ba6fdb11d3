"""Shared chain state published by the freshness oracle.

Both handles are created once at startup and passed explicitly to the oracle
(sole writer) and to every worker (readers).
"""

from __future__ import annotations

import asyncio
import time
from typing import Callable

from app.exceptions import AnchorUnchangedError

from simulator.core.models import AnchorState


class SharedAnchor:
    """Single-writer, many-reader holder of the current :class:`AnchorState`.

    Readers take a point-in-time snapshot (the frozen dataclass itself); the
    writer replaces the whole value, never mutates it.
    """

    def __init__(self, initial: str, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._state = AnchorState(anchor=initial, refreshed_at=clock())
        self._lock = asyncio.Lock()

    def snapshot(self) -> AnchorState:
        return self._state

    async def publish(self, anchor: str) -> AnchorState:
        """Replace the current anchor.

        Raises:
            AnchorUnchangedError: if ``anchor`` equals the published value.
        """
        async with self._lock:
            if anchor == self._state.anchor:
                raise AnchorUnchangedError(anchor)
            self._state = AnchorState(anchor=anchor, refreshed_at=self._clock())
            return self._state


class HeightCounter:
    """Latest observed chain height.

    A plain attribute store; a single reference assignment is atomic under
    the event loop, so no lock is taken.
    """

    def __init__(self, initial: int = 0) -> None:
        self._value = initial

    def load(self) -> int:
        return self._value

    def store(self, value: int) -> None:
        self._value = value
