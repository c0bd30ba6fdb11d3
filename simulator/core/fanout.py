from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Iterator

from app.logger import Logger, session_logger

from simulator.core.assembler import AssemblerConfig, TransactionAssembler
from simulator.core.channel import HandoffChannel
from simulator.core.instructions import InstructionBuilder
from simulator.core.models import Market, Participant, Universe
from simulator.core.state import HeightCounter, SharedAnchor


@dataclass(frozen=True)
class WorkerHandle:
    worker_id: int
    participant: Participant
    market: Market
    assembler: TransactionAssembler
    task: asyncio.Task[None]

    @property
    def seed(self) -> int:
        return self.worker_id


class WorkerArena:
    """Worker handles indexed by sequential id (which is also the worker's seed).

    The arena tracks workers but does not supervise them: a worker that dies
    stays dead and the rest keep running.
    """

    def __init__(self) -> None:
        self._handles: list[WorkerHandle] = []

    def __len__(self) -> int:
        return len(self._handles)

    def __getitem__(self, worker_id: int) -> WorkerHandle:
        return self._handles[worker_id]

    def __iter__(self) -> Iterator[WorkerHandle]:
        return iter(self._handles)

    def _add(self, handle: WorkerHandle) -> None:
        if handle.worker_id != len(self._handles):
            raise ValueError("worker ids must be assigned sequentially")
        self._handles.append(handle)

    def seeds(self) -> list[int]:
        return [h.seed for h in self._handles]

    def tasks(self) -> list[asyncio.Task[None]]:
        return [h.task for h in self._handles]

    @property
    def generated(self) -> int:
        return sum(h.assembler.generated for h in self._handles)

    @property
    def dropped(self) -> int:
        return sum(h.assembler.dropped for h in self._handles)

    def cancel_all(self) -> None:
        for handle in self._handles:
            handle.task.cancel()

    async def join(self) -> None:
        """Wait for every worker task to finish (normally only after cancel_all)."""
        await asyncio.gather(*self.tasks(), return_exceptions=True)


def start_market_makers(
    universe: Universe,
    *,
    builder: InstructionBuilder,
    anchor: SharedAnchor,
    height: HeightCounter,
    channel: HandoffChannel,
    quotes_per_second: int,
    logger: Logger | None = None,
) -> WorkerArena:
    """Spawn one market-making worker per (participant, market) pair.

    Participants are the outer loop and markets the inner one; seeds follow
    creation order starting at 0. The universe is validated against the
    builder before anything is spawned.

    Raises:
        ConfigurationError: the builder cannot serve some pair.
        ValueError: quotes_per_second < 1.
    """
    log = logger or session_logger

    if quotes_per_second < 1:
        raise ValueError("quotes_per_second must be >= 1")
    builder.validate(universe)

    arena = WorkerArena()
    for participant in universe.participants:
        for market in universe.markets:
            worker_id = len(arena)
            assembler = TransactionAssembler(
                AssemblerConfig(
                    worker_id=worker_id,
                    seed=worker_id,
                    quotes_per_second=quotes_per_second,
                ),
                participant,
                market,
                builder=builder,
                anchor=anchor,
                height=height,
                channel=channel,
                logger=log,
            )
            task = asyncio.create_task(assembler.run(), name=f"market-maker-{worker_id}")
            task.add_done_callback(_make_exit_logger(log, worker_id, participant, market))
            arena._add(
                WorkerHandle(
                    worker_id=worker_id,
                    participant=participant,
                    market=market,
                    assembler=assembler,
                    task=task,
                )
            )

    log.info(
        "sim.workers_started",
        workers=len(arena),
        participants=len(universe.participants),
        markets=len(universe.markets),
        quotes_per_second=quotes_per_second,
    )
    return arena


def _make_exit_logger(log: Logger, worker_id: int, participant: Participant, market: Market):
    def _on_exit(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        log.error(
            "sim.worker_died",
            worker_id=worker_id,
            participant=participant.pubkey,
            market=market.market_pk,
            error_type=type(exc).__name__,
            error=str(exc),
        )

    return _on_exit
