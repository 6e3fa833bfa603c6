from __future__ import annotations

import argparse
import random
import time
from collections.abc import Sequence

from fleet_telemetry.config import TelemetryConfig, load_config, load_default_config
from fleet_telemetry.service import TelemetryService
from fleet_telemetry.system_state import SystemState
from runtime.observability import bootstrap_observability

LOG_DIR = "logs"
STATUS_EVERY_S = 15.0


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="fleet-telemetry",
        description="Run the simulated fleet telemetry engine.",
    )
    parser.add_argument("--config", help="YAML config file; defaults to the packaged config")
    parser.add_argument("--log-dir", default=LOG_DIR)
    parser.add_argument("--seed", type=int, default=None, help="seed for reproducible data")
    parser.add_argument(
        "--status-every",
        type=float,
        default=STATUS_EVERY_S,
        help="seconds between fleet status log lines",
    )
    return parser.parse_args(argv)


def _load(path: str | None) -> TelemetryConfig:
    if path:
        return load_config(path)
    return load_default_config()


def main(argv: Sequence[str] | None = None) -> None:
    args = _parse_args(argv)
    observability = bootstrap_observability(log_dir=args.log_dir)
    config = _load(args.config)
    service = TelemetryService(
        config=config,
        state=SystemState(),
        rng=random.Random(args.seed),
        observability=observability.telemetry,
    )
    service.start_auto_update()
    observability.runtime.log_runtime_started(
        entity_count=len(config.fleet.entities),
        interval_ms=config.scheduler.tick_interval_ms,
        seed=args.seed,
    )
    try:
        while True:
            time.sleep(args.status_every)
            observability.runtime.log_fleet_status(
                health=service.get_health_status(),
                load=service.get_load_balance_status(),
                update=service.get_update_status(),
            )
    finally:
        service.stop_auto_update()
        observability.runtime.log_runtime_stopped()


if __name__ == "__main__":
    main()
