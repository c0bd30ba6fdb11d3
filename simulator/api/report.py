from __future__ import annotations

from typing import Any

from simulator.core.models import SimulationConfig, SimulationResult


def build_simulation_report(config: SimulationConfig, result: SimulationResult) -> dict[str, Any]:
    config_payload = {
        "config_file": config.config_file,
        "rpc_url": config.rpc_url,
        "quotes_per_second": config.quotes_per_second,
        "duration_seconds": config.duration_seconds,
        "channel_capacity": config.channel_capacity,
        "timeout_seconds": config.timeout_seconds,
        "commitment": config.commitment,
    }
    return {
        "config": config_payload,
        "result": {
            "worker_count": result.worker_count,
            "transaction_count": result.transaction_count,
            "dropped_count": result.dropped_count,
            "final_height": result.final_height,
            "oracle_status": result.oracle_status.value,
            "duration_seconds": result.duration_seconds,
            "throughput_tps": result.throughput_tps,
        },
        "metrics": result.metrics_report,
    }
