from __future__ import annotations

import math
import random
from collections import Counter
from datetime import datetime, timezone
from typing import Any

from app.logger import Logger, session_logger

from simulator.core.models import DispatchRecord


def _percentile(sorted_values: list[int], p: float) -> float | None:
    """Linear-interpolated percentile of an ascending list."""

    if not sorted_values:
        return None

    if p <= 0:
        return float(sorted_values[0])
    if p >= 1:
        return float(sorted_values[-1])

    k = (len(sorted_values) - 1) * p
    f = int(math.floor(k))
    c = int(math.ceil(k))
    if f == c:
        return float(sorted_values[f])
    return float(sorted_values[f] * (c - k) + sorted_values[c] * (k - f))


class _ReservoirSampler:
    """Fixed-size uniform sample of an unbounded stream of values."""

    def __init__(self, max_size: int, *, seed: int | None = None) -> None:
        if max_size <= 0:
            raise ValueError("max_size must be > 0")
        self._max_size = max_size
        self._rng = random.Random(seed)
        self._seen = 0
        self._values: list[int] = []

    def add(self, value: int) -> None:
        self._seen += 1
        if len(self._values) < self._max_size:
            self._values.append(value)
            return

        idx = self._rng.randrange(self._seen)
        if idx < self._max_size:
            self._values[idx] = value

    def values(self) -> list[int]:
        return list(self._values)


class MetricsCollector:
    """Accounts for dispatch pairs taken off the handoff channel.

    Tracks counts per market and per participant, the height range seen, and
    the handoff lag (time from record creation to drain) over a reservoir
    sample. Only the engine's drain task writes to it.
    """

    def __init__(self, *, sample_size: int = 5000, logger: Logger | None = None) -> None:
        self._logger = logger or session_logger
        self._count = 0
        self._by_market: Counter[str] = Counter()
        self._by_participant: Counter[str] = Counter()
        self._min_height: int | None = None
        self._max_height: int | None = None
        self._lag_sample = _ReservoirSampler(sample_size)
        self._lag_sum_ms = 0
        self._lag_max_ms = 0

    @property
    def count(self) -> int:
        return self._count

    def record(self, record: DispatchRecord, *, received_at: datetime | None = None) -> None:
        received_at = received_at or datetime.now(timezone.utc)
        lag_ms = max(0, int((received_at - record.sent_at).total_seconds() * 1000))

        self._count += 1
        self._by_market[record.market] += 1
        self._by_participant[record.participant] += 1
        self._lag_sample.add(lag_ms)
        self._lag_sum_ms += lag_ms
        self._lag_max_ms = max(self._lag_max_ms, lag_ms)

        if self._min_height is None or record.sent_height < self._min_height:
            self._min_height = record.sent_height
        if self._max_height is None or record.sent_height > self._max_height:
            self._max_height = record.sent_height

    def build_report(self) -> dict[str, Any]:
        lags = self._lag_sample.values()
        lags.sort()

        report = {
            "count": self._count,
            "by_market": dict(self._by_market),
            "by_participant": dict(self._by_participant),
            "min_sent_height": self._min_height,
            "max_sent_height": self._max_height,
            "handoff_lag": {
                "mean_ms": (self._lag_sum_ms / self._count) if self._count else None,
                "p50_ms": _percentile(lags, 0.50),
                "p95_ms": _percentile(lags, 0.95),
                "p99_ms": _percentile(lags, 0.99),
                "max_ms": self._lag_max_ms if self._count else None,
                "sample_size": len(lags),
            },
        }
        self._logger.debug("sim.metrics_report_built", count=self._count)
        return report
