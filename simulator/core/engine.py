from __future__ import annotations

import asyncio
import signal
import time

from app.exceptions import ChainQueryError
from app.logger import Logger, session_logger

from simulator.core.chain import ChainQuery, JsonRpcChainClient
from simulator.core.channel import HandoffChannel
from simulator.core.fanout import WorkerArena, start_market_makers
from simulator.core.instructions import InstructionBuilder, OpenBookV2InstructionBuilder
from simulator.core.metrics import MetricsCollector
from simulator.core.models import SimulationConfig, SimulationResult, Universe
from simulator.core.oracle import FreshnessOracle, OracleConfig
from simulator.core.state import HeightCounter, SharedAnchor
from simulator.core.universe import load_universe_file


class Simulator:
    """Wires oracle, workers and a channel drain together for one run.

    The drain stands in for the real dispatcher: it only accounts for each
    (transaction, record) pair in a :class:`MetricsCollector`.
    """

    def __init__(
        self,
        config: SimulationConfig,
        *,
        universe: Universe | None = None,
        chain: ChainQuery | None = None,
        builder: InstructionBuilder | None = None,
        oracle_config: OracleConfig | None = None,
        logger: Logger | None = None,
    ) -> None:
        self._config = config
        self._universe = universe
        self._chain = chain
        self._builder = builder
        self._oracle_config = oracle_config
        self._logger = logger or session_logger

    async def run(self) -> SimulationResult:
        if self._config.quotes_per_second < 1:
            raise ValueError("quotes_per_second must be >= 1")
        if self._config.duration_seconds is not None and self._config.duration_seconds < 0:
            raise ValueError("duration_seconds must be non-negative")

        universe = self._universe or load_universe_file(self._config.config_file)
        builder = self._builder or OpenBookV2InstructionBuilder(universe.program_id)

        owned_client: JsonRpcChainClient | None = None
        chain = self._chain
        if chain is None:
            owned_client = JsonRpcChainClient(
                self._config.rpc_url,
                timeout_seconds=self._config.timeout_seconds,
                commitment=self._config.commitment,
                logger=self._logger,
            )
            chain = owned_client

        try:
            return await self._run(universe, builder, chain)
        finally:
            if owned_client is not None:
                await owned_client.aclose()

    async def _run(
        self,
        universe: Universe,
        builder: InstructionBuilder,
        chain: ChainQuery,
    ) -> SimulationResult:
        # Catch configuration problems before touching the network.
        builder.validate(universe)

        try:
            initial_anchor = await chain.query_anchor()
            initial_height = await chain.query_height()
        except Exception as exc:
            raise ChainQueryError(
                f"could not fetch the initial anchor and height: {exc}",
                code="CHAIN_BOOTSTRAP_FAILED",
                details={"rpc_url": self._config.rpc_url},
            ) from exc

        anchor = SharedAnchor(initial_anchor)
        height = HeightCounter(initial_height)
        channel = HandoffChannel(self._config.channel_capacity)
        metrics = MetricsCollector(logger=self._logger)
        oracle = FreshnessOracle(
            chain,
            anchor,
            height,
            config=self._oracle_config,
            logger=self._logger,
        )

        stop_event = asyncio.Event()

        self._logger.info(
            "sim.start",
            participants=len(universe.participants),
            markets=len(universe.markets),
            workers=universe.pair_count,
            quotes_per_second=self._config.quotes_per_second,
            duration_seconds=self._config.duration_seconds,
            channel_capacity=self._config.channel_capacity,
            rpc_url=self._config.rpc_url,
            initial_height=initial_height,
        )

        def _handle_signal(signum: int, _frame) -> None:  # pragma: no cover
            self._logger.warning("sim.signal", signum=signum)
            stop_event.set()

        started = time.monotonic()
        arena: WorkerArena | None = None
        background: list[asyncio.Task[None]] = []

        with _SignalHandlers(_handle_signal):
            oracle_task = oracle.start()
            oracle_task.add_done_callback(self._log_oracle_exit)
            try:
                arena = start_market_makers(
                    universe,
                    builder=builder,
                    anchor=anchor,
                    height=height,
                    channel=channel,
                    quotes_per_second=self._config.quotes_per_second,
                    logger=self._logger,
                )
                background.append(asyncio.create_task(_drain(channel, metrics), name="channel-drain"))
                if self._config.duration_seconds is not None:
                    background.append(
                        asyncio.create_task(_stop_after(stop_event, self._config.duration_seconds))
                    )

                await stop_event.wait()
            finally:
                if arena is not None:
                    arena.cancel_all()
                    await arena.join()
                channel.close()

                for task in background:
                    task.cancel()
                await asyncio.gather(*background, return_exceptions=True)

                for _tx, record in channel.drain_pending():
                    metrics.record(record)

                oracle_task.cancel()
                await asyncio.gather(oracle_task, return_exceptions=True)

        ended = time.monotonic()

        result = SimulationResult(
            started_at_monotonic=started,
            ended_at_monotonic=ended,
            worker_count=len(arena) if arena is not None else 0,
            transaction_count=metrics.count,
            dropped_count=arena.dropped if arena is not None else 0,
            final_height=height.load(),
            oracle_status=oracle.status,
            metrics_report=metrics.build_report(),
        )

        self._logger.info(
            "sim.end",
            worker_count=result.worker_count,
            transaction_count=result.transaction_count,
            dropped_count=result.dropped_count,
            duration_seconds=round(result.duration_seconds, 3),
            throughput_tps=round(result.throughput_tps, 2),
            oracle_status=result.oracle_status.value,
        )

        return result

    def _log_oracle_exit(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._logger.error(
                "sim.oracle_crashed",
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return
        # TODO: decide whether workers should halt once the oracle has stopped;
        # today they keep signing against the frozen anchor.
        self._logger.warning("sim.oracle_task_ended", recovery="Restart the run once the RPC node is healthy")


async def _drain(channel: HandoffChannel, metrics: MetricsCollector) -> None:
    while True:
        _tx, record = await channel.receive()
        metrics.record(record)


async def _stop_after(stop_event: asyncio.Event, duration_seconds: float) -> None:
    await asyncio.sleep(max(0.0, duration_seconds))
    stop_event.set()


class _SignalHandlers:
    def __init__(self, handler) -> None:
        self._handler = handler
        self._previous: dict[int, object] = {}

    def __enter__(self):
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                self._previous[signum] = signal.signal(signum, self._handler)
            except (ValueError, OSError):
                # Not on the main thread, or the platform forbids it.
                pass
        return self

    def __exit__(self, exc_type, exc, tb):
        for signum, previous in self._previous.items():
            signal.signal(signum, previous)  # type: ignore[arg-type]
        return False
