from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from app.exceptions import ConfigurationError

from simulator.core.models import Market, Participant, Universe

_DEFAULT_PROGRAM_NAME = "openbook_v2"


def load_universe_file(path: str, *, program_name: str = _DEFAULT_PROGRAM_NAME) -> Universe:
    """Load the participant x market universe written by the configure step.

    Expected shape:
      {
        "programs": [{"name": "openbook_v2", "program_id": "..."}],
        "users": [
          {
            "name": "mm-0",                        (optional, defaults to pubkey)
            "pubkey": "...",
            "secret": [12, 34, ...] or "0a1b...",  (byte list or hex)
            "open_orders": [{"market": "...", "open_orders": "..."}],
            "token_data": [{"mint": "...", "token_account": "..."}]
          }
        ],
        "markets": [
          {
            "name": "MKT-0", "market_pk": "...", "price": 500,
            "bids": "...", "asks": "...", "event_heap": "...",
            "base_vault": "...", "quote_vault": "...",
            "oracle_a": "...", "oracle_b": "..."
          }
        ]
      }

    Raises:
        ConfigurationError: unreadable file or malformed content.
    """
    universe_path = Path(path)
    try:
        data = json.loads(universe_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ConfigurationError(
            "UNIVERSE_FILE_MISSING",
            f"universe file not found: {path}",
            details={"path": path},
        ) from exc
    except json.JSONDecodeError as exc:
        raise ConfigurationError(
            "UNIVERSE_FILE_INVALID_JSON",
            f"universe file is not valid JSON: {exc}",
            details={"path": path},
        ) from exc

    return parse_universe(data, program_name=program_name)


def parse_universe(data: Any, *, program_name: str = _DEFAULT_PROGRAM_NAME) -> Universe:
    if not isinstance(data, dict):
        raise ConfigurationError("UNIVERSE_INVALID", "universe must be a JSON object")

    program_id = _resolve_program_id(data.get("programs"), program_name)

    raw_users = data.get("users")
    if not isinstance(raw_users, list) or not raw_users:
        raise ConfigurationError("UNIVERSE_NO_USERS", "universe must contain a non-empty 'users' list")

    raw_markets = data.get("markets")
    if not isinstance(raw_markets, list) or not raw_markets:
        raise ConfigurationError("UNIVERSE_NO_MARKETS", "universe must contain a non-empty 'markets' list")

    participants = tuple(_parse_participant(i, raw) for i, raw in enumerate(raw_users))
    markets = tuple(_parse_market(i, raw) for i, raw in enumerate(raw_markets))

    market_keys = [m.market_pk for m in markets]
    if len(set(market_keys)) != len(market_keys):
        raise ConfigurationError("UNIVERSE_DUPLICATE_MARKET", "market_pk values must be unique")

    return Universe(program_id=program_id, participants=participants, markets=markets)


def _resolve_program_id(programs: Any, program_name: str) -> str:
    if not isinstance(programs, list):
        raise ConfigurationError("UNIVERSE_NO_PROGRAMS", "universe must contain a 'programs' list")

    for entry in programs:
        if isinstance(entry, dict) and entry.get("name") == program_name:
            program_id = entry.get("program_id")
            if isinstance(program_id, str) and program_id:
                return program_id

    raise ConfigurationError(
        "UNIVERSE_PROGRAM_MISSING",
        f"no program named {program_name!r} in universe",
        details={"program_name": program_name},
    )


def _parse_participant(index: int, raw: Any) -> Participant:
    if not isinstance(raw, dict):
        raise ConfigurationError("UNIVERSE_USER_INVALID", f"users[{index}] must be an object")

    pubkey = _require_str(raw, "pubkey", f"users[{index}]")
    name = str(raw.get("name") or pubkey)
    secret = _parse_secret(raw.get("secret"), f"users[{index}].secret")

    open_orders: dict[str, str] = {}
    for entry in raw.get("open_orders") or []:
        if not isinstance(entry, dict):
            raise ConfigurationError("UNIVERSE_USER_INVALID", f"users[{index}].open_orders entries must be objects")
        market = _require_str(entry, "market", f"users[{index}].open_orders")
        open_orders[market] = _require_str(entry, "open_orders", f"users[{index}].open_orders")

    token_accounts: list[str] = []
    for entry in raw.get("token_data") or []:
        if not isinstance(entry, dict):
            raise ConfigurationError("UNIVERSE_USER_INVALID", f"users[{index}].token_data entries must be objects")
        token_accounts.append(_require_str(entry, "token_account", f"users[{index}].token_data"))

    return Participant(
        name=name,
        pubkey=pubkey,
        secret=secret,
        open_orders=open_orders,
        token_accounts=tuple(token_accounts),
    )


def _parse_market(index: int, raw: Any) -> Market:
    if not isinstance(raw, dict):
        raise ConfigurationError("UNIVERSE_MARKET_INVALID", f"markets[{index}] must be an object")

    market_pk = _require_str(raw, "market_pk", f"markets[{index}]")
    price = raw.get("price")
    if isinstance(price, bool) or not isinstance(price, int) or price < 0:
        raise ConfigurationError(
            "UNIVERSE_MARKET_INVALID",
            f"markets[{index}] has invalid price: {price!r}",
            details={"market": market_pk},
        )

    accounts = {
        key: value
        for key, value in raw.items()
        if key not in ("name", "market_pk", "price", "market_index") and isinstance(value, str)
    }
    return Market(
        name=str(raw.get("name") or market_pk),
        market_pk=market_pk,
        price=price,
        accounts=accounts,
    )


def _parse_secret(raw: Any, where: str) -> bytes:
    if isinstance(raw, list) and raw and all(isinstance(b, int) and 0 <= b <= 255 for b in raw):
        return bytes(raw)
    if isinstance(raw, str) and raw:
        try:
            return bytes.fromhex(raw)
        except ValueError as exc:
            raise ConfigurationError("UNIVERSE_SECRET_INVALID", f"{where} is not valid hex") from exc
    raise ConfigurationError(
        "UNIVERSE_SECRET_INVALID",
        f"{where} must be a non-empty byte list or hex string",
    )


def _require_str(raw: dict[str, Any], key: str, where: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(
            "UNIVERSE_FIELD_MISSING",
            f"{where} is missing string field {key!r}",
            details={"field": key},
        )
    return value.strip()
