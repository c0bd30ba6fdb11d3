from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class OracleStatus(str, Enum):
    """Lifecycle of the freshness oracle.

    polling: querying height (or sleeping between cycles)
    updating: waiting for an anchor that differs from the published one
    degraded: last refresh attempt found no new anchor, still inside the staleness limit
    stopped: staleness limit exceeded; terminal
    """

    POLLING = "polling"
    UPDATING = "updating"
    DEGRADED = "degraded"
    STOPPED = "stopped"


@dataclass(frozen=True)
class AnchorState:
    """Published validity anchor plus the monotonic time it was last refreshed."""

    anchor: str
    refreshed_at: float


@dataclass(frozen=True)
class Participant:
    name: str
    pubkey: str
    secret: bytes = field(repr=False)
    # market public key -> open-orders account
    open_orders: dict[str, str] = field(default_factory=dict)
    token_accounts: tuple[str, ...] = ()


@dataclass(frozen=True)
class Market:
    name: str
    market_pk: str
    price: int
    # bids, asks, event_heap, base_vault, quote_vault, oracle_a, oracle_b, ...
    accounts: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Universe:
    program_id: str
    participants: tuple[Participant, ...]
    markets: tuple[Market, ...]

    @property
    def pair_count(self) -> int:
        return len(self.participants) * len(self.markets)


@dataclass(frozen=True)
class Instruction:
    """One protocol instruction, kept as structured data (never byte-encoded)."""

    program_id: str
    kind: str
    accounts: dict[str, str | None]
    args: dict[str, Any]


@dataclass(frozen=True)
class Transaction:
    payer: str
    anchor: str
    instructions: tuple[Instruction, ...]
    signatures: tuple[str, ...]

    @property
    def signature(self) -> str:
        return self.signatures[0]


@dataclass(frozen=True)
class DispatchRecord:
    market: str
    participant: str
    signature: str
    sent_height: int
    sent_at: datetime
    priority_fees: int = 0
    is_consume_event: bool = False


@dataclass(frozen=True)
class SimulationConfig:
    config_file: str
    rpc_url: str
    quotes_per_second: int
    duration_seconds: float | None
    channel_capacity: int = 0
    timeout_seconds: float = 10.0
    commitment: str = "confirmed"


@dataclass
class SimulationResult:
    started_at_monotonic: float
    ended_at_monotonic: float
    worker_count: int
    transaction_count: int
    dropped_count: int
    final_height: int
    oracle_status: OracleStatus
    metrics_report: dict[str, Any] | None = None

    @property
    def duration_seconds(self) -> float:
        return max(0.0, self.ended_at_monotonic - self.started_at_monotonic)

    @property
    def throughput_tps(self) -> float:
        duration = self.duration_seconds
        return (self.transaction_count / duration) if duration > 0 else 0.0
