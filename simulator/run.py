from __future__ import annotations

import argparse
import asyncio
import json
import os
import re
from pathlib import Path

from app.exceptions import ChainQueryError, ConfigurationError
from app.logger import configure_logging, session_logger as logger

from simulator.api.report import build_simulation_report
from simulator.core.engine import Simulator
from simulator.core.models import SimulationConfig

_DURATION_RE = re.compile(r"^(?P<value>\d+(?:\.\d+)?)(?P<unit>ms|s|m|h)$")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration_to_seconds(raw: str) -> float:
    """Parse duration strings like '500ms', '10s', '5m', '1h' into seconds."""
    match = _DURATION_RE.match(raw.strip())
    if not match:
        raise ValueError("duration must match <number><unit> where unit is ms|s|m|h")
    return float(match.group("value")) * _UNIT_SECONDS[match.group("unit")]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="market-making load generator")
    parser.add_argument(
        "--config-file",
        type=str,
        default=os.environ.get("MM_SIM_CONFIG_FILE", "configure/config.json"),
        help="Universe file written by the configure step (users, markets, programs)",
    )
    parser.add_argument(
        "--rpc-url",
        type=str,
        default=os.environ.get("MM_SIM_RPC_URL", "http://127.0.0.1:8899"),
        help="JSON-RPC endpoint used for anchor and height queries",
    )
    parser.add_argument(
        "--quotes-per-second",
        type=int,
        default=1,
        help="Transactions per second for each (participant, market) worker",
    )
    parser.add_argument(
        "--duration",
        type=str,
        default=None,
        help="Run duration (e.g. 30s, 5m). Runs until SIGINT/SIGTERM when omitted.",
    )
    parser.add_argument(
        "--channel-capacity",
        type=int,
        default=0,
        help="Handoff channel capacity; 0 means unbounded",
    )
    parser.add_argument(
        "--timeout-seconds",
        type=float,
        default=10.0,
        help="HTTP timeout per RPC request",
    )
    parser.add_argument(
        "--commitment",
        type=str,
        choices=["processed", "confirmed", "finalized"],
        default="confirmed",
        help="Commitment level for anchor and height queries",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Write summary report JSON to this path",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=os.environ.get("MM_SIM_LOG_LEVEL", "INFO"),
        help="Minimum log level (DEBUG logs every generated transaction)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit JSON log lines instead of console output",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        configure_logging(args.log_level, json_output=args.log_json)
    except ValueError as exc:
        parser.error(str(exc))

    if args.quotes_per_second < 1:
        logger.error(
            "sim.invalid_rate",
            provided=args.quotes_per_second,
            recovery="Provide --quotes-per-second >= 1",
        )
        return 2

    if args.channel_capacity < 0:
        logger.error(
            "sim.invalid_channel_capacity",
            provided=args.channel_capacity,
            recovery="Provide --channel-capacity >= 0",
        )
        return 2

    duration_seconds = None
    if args.duration is not None:
        try:
            duration_seconds = parse_duration_to_seconds(args.duration)
        except ValueError as exc:
            logger.error(
                "sim.invalid_duration",
                provided=args.duration,
                error=str(exc),
            )
            return 2

    config = SimulationConfig(
        config_file=args.config_file,
        rpc_url=args.rpc_url.strip(),
        quotes_per_second=args.quotes_per_second,
        duration_seconds=duration_seconds,
        channel_capacity=args.channel_capacity,
        timeout_seconds=args.timeout_seconds,
        commitment=args.commitment,
    )

    simulator = Simulator(config, logger=logger)
    try:
        result = asyncio.run(simulator.run())
    except ConfigurationError as exc:
        logger.error(
            "sim.invalid_configuration",
            code=exc.code,
            error=exc.message,
            details=exc.details,
            recovery="Fix the universe file or re-run the configure step",
        )
        return 2
    except ChainQueryError as exc:
        logger.error(
            "sim.chain_unavailable",
            code=exc.code,
            error=exc.message,
            rpc_url=config.rpc_url,
            recovery="Ensure the RPC node is reachable and synced",
        )
        return 2

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        payload = build_simulation_report(config, result)
        output_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")

        logger.info("sim.report_written", path=str(output_path))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
