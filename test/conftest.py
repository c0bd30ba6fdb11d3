"""Pytest configuration and fixtures

Provides a small in-memory universe and a scriptable fake chain so the
oracle, workers and engine can run without an RPC node.
"""

import sys
from pathlib import Path
from typing import Callable

import pytest
import structlog

# Add project root to sys.path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from simulator.core.models import Market, Participant, Universe  # noqa: E402

PROGRAM_ID = "opnb2LAfJYbRMAHHvqjCwQxanZn7ReEHp1k81EohpZb"


class FakeChain:
    """Chain-query capability driven by callables or fixed values.

    ``anchors`` / ``heights`` may be a value (returned forever), an iterator
    (each item is returned, or raised if it is an exception), or None to fail
    every call.
    """

    def __init__(self, anchors=None, heights=None) -> None:
        self._anchors = anchors
        self._heights = heights
        self.anchor_calls = 0
        self.height_calls = 0

    @staticmethod
    def _next(source):
        if source is None:
            raise RuntimeError("chain unavailable")
        if isinstance(source, (str, int)):
            return source
        value = next(source)
        if isinstance(value, Exception):
            raise value
        return value

    async def query_anchor(self) -> str:
        self.anchor_calls += 1
        return self._next(self._anchors)

    async def query_height(self) -> int:
        self.height_calls += 1
        return self._next(self._heights)


def _market(index: int, price: int = 1000) -> Market:
    return Market(
        name=f"MKT-{index}",
        market_pk=f"market-{index}",
        price=price,
        accounts={
            "bids": f"bids-{index}",
            "asks": f"asks-{index}",
            "event_heap": f"heap-{index}",
            "base_vault": f"base-vault-{index}",
            "quote_vault": f"quote-vault-{index}",
            "oracle_a": f"oracle-a-{index}",
            "oracle_b": f"oracle-b-{index}",
        },
    )


def _participant(index: int, markets: list[Market]) -> Participant:
    return Participant(
        name=f"mm-{index}",
        pubkey=f"user-{index}",
        secret=bytes([index + 1]) * 32,
        open_orders={m.market_pk: f"oo-{index}-{m.market_pk}" for m in markets},
        token_accounts=(f"token-{index}-quote", f"token-{index}-base"),
    )


@pytest.fixture
def make_universe() -> Callable[..., Universe]:
    def _make(participants: int = 2, markets: int = 3) -> Universe:
        market_list = [_market(i) for i in range(markets)]
        return Universe(
            program_id=PROGRAM_ID,
            participants=tuple(_participant(i, market_list) for i in range(participants)),
            markets=tuple(market_list),
        )

    return _make


@pytest.fixture
def universe(make_universe) -> Universe:
    return make_universe()


@pytest.fixture
def fake_chain_factory() -> Callable[..., FakeChain]:
    return FakeChain


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Undo any configure_logging() done by a test (e.g. the CLI tests)."""
    yield
    structlog.reset_defaults()
