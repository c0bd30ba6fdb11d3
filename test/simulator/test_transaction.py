"""Tests for transaction signing."""

from __future__ import annotations

import dataclasses

import pytest

from simulator.core.instructions import OpenBookV2InstructionBuilder
from simulator.core.transaction import sign_transaction


def _instructions(universe, client_order_id: int = 1):
    builder = OpenBookV2InstructionBuilder(universe.program_id)
    return builder.build_order_triple(universe.participants[0], universe.markets[0], client_order_id, 5, 100)


class TestSignTransaction:
    def test_signature_is_deterministic(self, universe):
        participant = universe.participants[0]
        a = sign_transaction(_instructions(universe), participant, "anchor-1")
        b = sign_transaction(_instructions(universe), participant, "anchor-1")

        assert a.signature == b.signature
        assert len(a.signature) == 64
        assert a.payer == participant.pubkey
        assert a.anchor == "anchor-1"
        assert len(a.instructions) == 3

    def test_signature_depends_on_anchor_message_and_key(self, universe):
        participant = universe.participants[0]
        base = sign_transaction(_instructions(universe), participant, "anchor-1").signature

        assert sign_transaction(_instructions(universe), participant, "anchor-2").signature != base
        assert sign_transaction(_instructions(universe, 2), participant, "anchor-1").signature != base

        other_key = dataclasses.replace(participant, secret=b"different")
        assert sign_transaction(_instructions(universe), other_key, "anchor-1").signature != base

    def test_empty_instruction_list_rejected(self, universe):
        with pytest.raises(ValueError):
            sign_transaction([], universe.participants[0], "anchor-1")
