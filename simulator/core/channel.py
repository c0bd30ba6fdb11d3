from __future__ import annotations

import asyncio

from app.exceptions import ChannelClosedError

from simulator.core.models import DispatchRecord, Transaction

DispatchPair = tuple[Transaction, DispatchRecord]


class HandoffChannel:
    """Multi-producer queue of (transaction, record) pairs for the dispatcher.

    Producers push with :meth:`send`, which never suspends. ``capacity=0``
    means unbounded.
    """

    def __init__(self, capacity: int = 0) -> None:
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        self._queue: asyncio.Queue[DispatchPair] = asyncio.Queue(maxsize=capacity)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return self._queue.qsize()

    def send(self, pair: DispatchPair) -> None:
        """Push one pair.

        Raises:
            ChannelClosedError: the channel has been closed.
            asyncio.QueueFull: a bounded channel is at capacity.
        """
        if self._closed:
            raise ChannelClosedError()
        self._queue.put_nowait(pair)

    async def receive(self) -> DispatchPair:
        return await self._queue.get()

    def drain_pending(self) -> list[DispatchPair]:
        """Remove and return everything currently queued."""
        pending: list[DispatchPair] = []
        while True:
            try:
                pending.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return pending

    def close(self) -> None:
        self._closed = True
