"""Tests for the shared anchor/height handles and the handoff channel."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from app.exceptions import AnchorUnchangedError, ChannelClosedError
from simulator.core.channel import HandoffChannel
from simulator.core.models import DispatchRecord, Transaction
from simulator.core.state import HeightCounter, SharedAnchor


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _pair(signature: str = "sig") -> tuple[Transaction, DispatchRecord]:
    tx = Transaction(payer="user-0", anchor="A", instructions=(), signatures=(signature,))
    record = DispatchRecord(
        market="market-0",
        participant="user-0",
        signature=signature,
        sent_height=1,
        sent_at=datetime.now(timezone.utc),
    )
    return tx, record


class TestSharedAnchor:
    @pytest.mark.asyncio
    async def test_publish_replaces_whole_state(self):
        clock = FakeClock()
        anchor = SharedAnchor("A", clock=clock)
        first = anchor.snapshot()
        assert first.anchor == "A"
        assert first.refreshed_at == 100.0

        clock.now = 105.0
        state = await anchor.publish("B")

        assert state.anchor == "B"
        assert state.refreshed_at == 105.0
        assert anchor.snapshot() is state
        # Old snapshots are untouched.
        assert first.anchor == "A"

    @pytest.mark.asyncio
    async def test_publish_same_anchor_rejected(self):
        anchor = SharedAnchor("A")
        before = anchor.snapshot()

        with pytest.raises(AnchorUnchangedError) as exc_info:
            await anchor.publish("A")

        assert exc_info.value.code == "ANCHOR_UNCHANGED"
        assert anchor.snapshot() is before


class TestHeightCounter:
    def test_store_and_load(self):
        height = HeightCounter()
        assert height.load() == 0
        height.store(12)
        assert height.load() == 12
        height.store(9)
        assert height.load() == 9


class TestHandoffChannel:
    @pytest.mark.asyncio
    async def test_send_and_receive_in_order(self):
        channel = HandoffChannel()
        channel.send(_pair("s1"))
        channel.send(_pair("s2"))

        assert len(channel) == 2
        first = await channel.receive()
        second = await channel.receive()
        assert first[1].signature == "s1"
        assert second[1].signature == "s2"

    @pytest.mark.asyncio
    async def test_closed_channel_rejects_send(self):
        channel = HandoffChannel()
        channel.close()

        assert channel.closed
        with pytest.raises(ChannelClosedError):
            channel.send(_pair())

    @pytest.mark.asyncio
    async def test_bounded_channel_raises_when_full(self):
        channel = HandoffChannel(capacity=1)
        channel.send(_pair("s1"))

        with pytest.raises(asyncio.QueueFull):
            channel.send(_pair("s2"))

    @pytest.mark.asyncio
    async def test_drain_pending_empties_queue(self):
        channel = HandoffChannel()
        for i in range(3):
            channel.send(_pair(f"s{i}"))

        pending = channel.drain_pending()

        assert [record.signature for _tx, record in pending] == ["s0", "s1", "s2"]
        assert len(channel) == 0
        assert channel.drain_pending() == []

    def test_negative_capacity_rejected(self):
        with pytest.raises(ValueError):
            HandoffChannel(capacity=-1)
