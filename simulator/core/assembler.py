from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from datetime import datetime, timezone

from app.exceptions import ChannelClosedError
from app.logger import Logger, session_logger

from simulator.core.channel import HandoffChannel
from simulator.core.instructions import InstructionBuilder
from simulator.core.models import DispatchRecord, Market, Participant, Transaction
from simulator.core.rate_gate import RateGate
from simulator.core.state import HeightCounter, SharedAnchor
from simulator.core.transaction import sign_transaction

_WORD_BITS = 64
_OFFSET_MODULUS = 100
_SIZE_MODULUS = 1000
_SIZE_FLOOR = 10


def truncated_mod(value: int, modulus: int) -> int:
    """Remainder with the sign of ``value`` (truncated division).

    Python's ``%`` follows the divisor's sign (``-7 % 100 == 93``); order
    offsets use the truncating rule instead, so ``truncated_mod(-7, 100) == -7``
    and results for a positive modulus lie in ``(-modulus, modulus)``.
    """
    remainder = abs(value) % modulus
    return -remainder if value < 0 else remainder


class OrderSampler:
    """Per-worker pseudorandom stream for order offsets and sizes.

    Each draw consumes one signed 64-bit sample for the offset and one
    unsigned 64-bit sample for the size, in that order.
    """

    def __init__(self, seed: int) -> None:
        self._rng = random.Random(seed)

    def _signed_word(self) -> int:
        raw = self._rng.getrandbits(_WORD_BITS)
        if raw >= 1 << (_WORD_BITS - 1):
            raw -= 1 << _WORD_BITS
        return raw

    def _unsigned_word(self) -> int:
        return self._rng.getrandbits(_WORD_BITS)

    def draw(self) -> tuple[int, int]:
        """Return (offset in [-99, 99], size in [10, 1009])."""
        offset = truncated_mod(self._signed_word(), _OFFSET_MODULUS)
        size = self._unsigned_word() % _SIZE_MODULUS + _SIZE_FLOOR
        return offset, size


@dataclass(frozen=True)
class AssemblerConfig:
    worker_id: int
    seed: int
    quotes_per_second: int


class TransactionAssembler:
    """One market-making worker for a single (participant, market) pair.

    Every cycle it cancels the participant's open orders and re-quotes a bid
    and an ask around the market's reference price, signing against the
    currently published anchor.
    """

    def __init__(
        self,
        config: AssemblerConfig,
        participant: Participant,
        market: Market,
        *,
        builder: InstructionBuilder,
        anchor: SharedAnchor,
        height: HeightCounter,
        channel: HandoffChannel,
        gate: RateGate | None = None,
        logger: Logger | None = None,
    ) -> None:
        self._config = config
        self._participant = participant
        self._market = market
        self._builder = builder
        self._anchor = anchor
        self._height = height
        self._channel = channel
        self._gate = gate or RateGate(config.quotes_per_second)
        self._logger = logger or session_logger

        self._sampler = OrderSampler(config.seed)
        self._client_order_id = 1
        self.generated = 0
        self.dropped = 0

    @property
    def worker_id(self) -> int:
        return self._config.worker_id

    @property
    def next_client_order_id(self) -> int:
        return self._client_order_id

    async def run(self) -> None:
        while True:
            self._gate.begin()
            for _ in range(self._gate.quota):
                self.assemble_once()
            await self._gate.wait()

    def assemble_once(self) -> Transaction:
        """Build, sign and hand off one cancel/bid/ask transaction."""
        offset, size = self._sampler.draw()
        client_order_id = self._client_order_id

        instructions = self._builder.build_order_triple(
            self._participant,
            self._market,
            client_order_id,
            offset,
            size,
        )
        anchor = self._anchor.snapshot().anchor
        tx = sign_transaction(instructions, self._participant, anchor)

        record = DispatchRecord(
            market=self._market.market_pk,
            participant=self._participant.pubkey,
            signature=tx.signature,
            sent_height=self._height.load(),
            sent_at=datetime.now(timezone.utc),
        )

        try:
            self._channel.send((tx, record))
        except (ChannelClosedError, asyncio.QueueFull) as exc:
            self.dropped += 1
            self._logger.error(
                "sim.worker_push_failed",
                worker_id=self._config.worker_id,
                signature=tx.signature,
                error_type=type(exc).__name__,
                error=str(exc),
            )
        else:
            self.generated += 1
            self._logger.debug(
                "sim.worker_push_ok",
                worker_id=self._config.worker_id,
                signature=tx.signature,
                client_order_id=client_order_id,
            )

        self._client_order_id += 1
        return tx
