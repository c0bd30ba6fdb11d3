"""Instruction builders.

The assembler only knows the :class:`InstructionBuilder` protocol. A builder
owns everything venue-specific: account wiring, the reference price and the
order arguments. New protocols plug in by implementing the two methods.
"""

from __future__ import annotations

from typing import Protocol

from app.exceptions import ConfigurationError

from simulator.core.models import Instruction, Market, Participant, Universe

_U64_MAX = 2**64 - 1
_I64_MAX = 2**63 - 1
_ORDER_LIMIT = 255
_TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"

_REQUIRED_MARKET_ACCOUNTS = (
    "bids",
    "asks",
    "event_heap",
    "base_vault",
    "quote_vault",
    "oracle_a",
    "oracle_b",
)


class InstructionBuilder(Protocol):
    def validate(self, universe: Universe) -> None:
        """Raise ConfigurationError if any (participant, market) pair cannot be built."""
        ...

    def build_order_triple(
        self,
        participant: Participant,
        market: Market,
        client_order_id: int,
        offset: int,
        size: int,
    ) -> list[Instruction]:
        """Return [cancel-all, place-bid, place-ask] for one quote refresh."""
        ...


class OpenBookV2InstructionBuilder:
    """Builds OpenBook v2 style cancel/bid/ask triples as structured instructions.

    Bid price is ``market.price + offset`` and ask price ``market.price - offset``.
    The bid is sized in base lots with unlimited quote; the ask is sized in quote
    lots with unlimited base.
    """

    def __init__(self, program_id: str) -> None:
        if not program_id:
            raise ValueError("program_id must be non-empty")
        self._program_id = program_id

    @property
    def program_id(self) -> str:
        return self._program_id

    def validate(self, universe: Universe) -> None:
        for market in universe.markets:
            missing = [key for key in _REQUIRED_MARKET_ACCOUNTS if not market.accounts.get(key)]
            if missing:
                raise ConfigurationError(
                    "MARKET_ACCOUNTS_MISSING",
                    f"market {market.name!r} is missing required accounts",
                    details={"market": market.market_pk, "missing": missing},
                )

        for participant in universe.participants:
            if not participant.token_accounts:
                raise ConfigurationError(
                    "TOKEN_ACCOUNT_MISSING",
                    f"participant {participant.name!r} has no token accounts",
                    details={"participant": participant.pubkey},
                )
            for market in universe.markets:
                if market.market_pk not in participant.open_orders:
                    raise ConfigurationError(
                        "OPEN_ORDERS_MISSING",
                        f"participant {participant.name!r} has no open-orders account for market {market.name!r}",
                        details={"participant": participant.pubkey, "market": market.market_pk},
                    )

    def build_order_triple(
        self,
        participant: Participant,
        market: Market,
        client_order_id: int,
        offset: int,
        size: int,
    ) -> list[Instruction]:
        open_orders_account = participant.open_orders[market.market_pk]
        accounts = market.accounts

        cancel_all = Instruction(
            program_id=self._program_id,
            kind="cancel_all_orders",
            accounts={
                "asks": accounts["asks"],
                "bids": accounts["bids"],
                "market": market.market_pk,
                "open_orders_account": open_orders_account,
                "signer": participant.pubkey,
            },
            args={"limit": _ORDER_LIMIT, "side_option": None},
        )

        place_bid = Instruction(
            program_id=self._program_id,
            kind="place_order",
            accounts=self._place_order_accounts(
                participant,
                market,
                open_orders_account,
                market_vault=accounts["quote_vault"],
                user_token_account=participant.token_accounts[0],
            ),
            args=_limit_order_args(
                side="bid",
                client_order_id=client_order_id,
                price_lots=market.price + offset,
                max_base_lots=size,
                max_quote_lots_including_fees=_I64_MAX,
            ),
        )

        place_ask = Instruction(
            program_id=self._program_id,
            kind="place_order",
            accounts=self._place_order_accounts(
                participant,
                market,
                open_orders_account,
                market_vault=accounts["base_vault"],
                user_token_account=accounts["base_vault"],
            ),
            args=_limit_order_args(
                side="ask",
                client_order_id=client_order_id,
                price_lots=market.price - offset,
                max_base_lots=_I64_MAX,
                max_quote_lots_including_fees=size,
            ),
        )

        return [cancel_all, place_bid, place_ask]

    def _place_order_accounts(
        self,
        participant: Participant,
        market: Market,
        open_orders_account: str,
        *,
        market_vault: str,
        user_token_account: str,
    ) -> dict[str, str | None]:
        accounts = market.accounts
        return {
            "asks": accounts["asks"],
            "bids": accounts["bids"],
            "event_heap": accounts["event_heap"],
            "market": market.market_pk,
            "market_vault": market_vault,
            "open_orders_account": open_orders_account,
            "open_orders_admin": None,
            "oracle_a": accounts["oracle_a"],
            "oracle_b": accounts["oracle_b"],
            "signer": participant.pubkey,
            "user_token_account": user_token_account,
            "token_program": _TOKEN_PROGRAM_ID,
        }


def _limit_order_args(
    *,
    side: str,
    client_order_id: int,
    price_lots: int,
    max_base_lots: int,
    max_quote_lots_including_fees: int,
) -> dict[str, object]:
    return {
        "order_type": "limit",
        "side": side,
        "limit": _ORDER_LIMIT,
        "client_order_id": client_order_id,
        "price_lots": price_lots,
        "max_base_lots": max_base_lots,
        "max_quote_lots_including_fees": max_quote_lots_including_fees,
        "expiry_timestamp": _U64_MAX,
        "self_trade_behavior": "decrement_take",
    }
