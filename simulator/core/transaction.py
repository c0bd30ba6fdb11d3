"""Transaction assembly and signing.

Signatures are HMAC-SHA256 over a canonical JSON rendering of the message
(payer, anchor, instructions), keyed by the participant secret. They are
unique per (message, credential) and cheap to compute, which is all a load
generator needs; they are not valid on-chain signatures.
"""

from __future__ import annotations

import dataclasses
import hashlib
import hmac
import json
from typing import Iterable

from simulator.core.models import Instruction, Participant, Transaction


def message_bytes(payer: str, anchor: str, instructions: Iterable[Instruction]) -> bytes:
    message = {
        "payer": payer,
        "anchor": anchor,
        "instructions": [dataclasses.asdict(ix) for ix in instructions],
    }
    return json.dumps(message, sort_keys=True, separators=(",", ":")).encode("utf-8")


def sign_transaction(
    instructions: Iterable[Instruction],
    participant: Participant,
    anchor: str,
) -> Transaction:
    """Build a transaction paid and signed by ``participant`` against ``anchor``."""
    instructions = tuple(instructions)
    if not instructions:
        raise ValueError("a transaction needs at least one instruction")

    digest = hmac.new(
        participant.secret,
        message_bytes(participant.pubkey, anchor, instructions),
        hashlib.sha256,
    )
    return Transaction(
        payer=participant.pubkey,
        anchor=anchor,
        instructions=instructions,
        signatures=(digest.hexdigest(),),
    )
