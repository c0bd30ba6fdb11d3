from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable

from app.logger import Logger, session_logger

from simulator.core.chain import ChainQuery
from simulator.core.models import OracleStatus
from simulator.core.state import HeightCounter, SharedAnchor

_POLL_INTERVAL_SECONDS = 0.3
_ANCHOR_RETRY_INTERVAL_SECONDS = 0.2
_ANCHOR_REFRESH_BUDGET_SECONDS = 5.0
_STALENESS_LIMIT_SECONDS = 120.0


@dataclass(frozen=True)
class OracleConfig:
    poll_interval_seconds: float = _POLL_INTERVAL_SECONDS
    retry_interval_seconds: float = _ANCHOR_RETRY_INTERVAL_SECONDS
    refresh_budget_seconds: float = _ANCHOR_REFRESH_BUDGET_SECONDS
    staleness_limit_seconds: float = _STALENESS_LIMIT_SECONDS


class FreshnessOracle:
    """Keeps the shared (anchor, height) pair fresh.

    Each cycle stores the latest height, then waits (bounded) for an anchor
    different from the published one. Query failures are logged and retried
    at the loop's cadence. If no new anchor has been published for longer than
    ``staleness_limit_seconds`` (measured on ``clock`` from construction or the
    last publish) the loop stops for good; readers keep seeing the last
    published values.
    """

    def __init__(
        self,
        chain: ChainQuery,
        anchor: SharedAnchor,
        height: HeightCounter,
        *,
        config: OracleConfig | None = None,
        logger: Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._chain = chain
        self._anchor = anchor
        self._height = height
        self._config = config or OracleConfig()
        self._logger = logger or session_logger
        self._clock = clock
        self._status = OracleStatus.POLLING
        self._last_updated = clock()

    @property
    def status(self) -> OracleStatus:
        return self._status

    def start(self) -> asyncio.Task[None]:
        return asyncio.create_task(self.run(), name="freshness-oracle")

    async def run(self) -> None:
        while True:
            self._status = OracleStatus.POLLING

            try:
                new_height = await self._chain.query_height()
            except Exception as exc:
                self._logger.warning(
                    "sim.oracle_height_failed",
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                if self._stale_beyond_limit():
                    return
                await asyncio.sleep(self._config.poll_interval_seconds)
                continue

            self._height.store(new_height)

            self._status = OracleStatus.UPDATING
            previous = self._anchor.snapshot().anchor
            new_anchor = await self.fetch_new_anchor(previous)

            if new_anchor is not None:
                await self._anchor.publish(new_anchor)
                self._last_updated = self._clock()
                self._status = OracleStatus.POLLING
                self._logger.debug(
                    "sim.oracle_anchor_updated",
                    anchor=new_anchor,
                    height=new_height,
                )
            else:
                self._status = OracleStatus.DEGRADED
                self._logger.error(
                    "sim.oracle_anchor_stale",
                    anchor=previous,
                    seconds_since_update=round(self._seconds_since_update(), 3),
                )
                if self._stale_beyond_limit():
                    return

            await asyncio.sleep(self._config.poll_interval_seconds)

    async def fetch_new_anchor(self, previous: str) -> str | None:
        """Poll for an anchor different from ``previous``.

        Returns the first differing anchor, or None once the refresh budget is
        spent. Failed queries count against the same budget.
        """
        started = self._clock()
        while self._clock() - started < self._config.refresh_budget_seconds:
            try:
                candidate = await self._chain.query_anchor()
            except Exception as exc:
                self._logger.debug(
                    "sim.oracle_anchor_query_failed",
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
            else:
                if candidate != previous:
                    return candidate
                self._logger.debug("sim.oracle_anchor_unchanged", anchor=previous)

            await asyncio.sleep(self._config.retry_interval_seconds)
        return None

    def _seconds_since_update(self) -> float:
        return self._clock() - self._last_updated

    def _stale_beyond_limit(self) -> bool:
        """Check the staleness limit; on breach mark the oracle stopped."""
        elapsed = self._seconds_since_update()
        if elapsed <= self._config.staleness_limit_seconds:
            return False

        self._status = OracleStatus.STOPPED
        self._logger.critical(
            "sim.oracle_stopped",
            seconds_since_update=round(elapsed, 3),
            staleness_limit_seconds=self._config.staleness_limit_seconds,
            anchor=self._anchor.snapshot().anchor,
            height=self._height.load(),
        )
        return True
