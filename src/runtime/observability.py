from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from fleet_telemetry.contracts import HealthStatus, LoadBalanceStatus, UpdateStatus
from fleet_telemetry.observability import NullMetrics, Observability, StdlibLogger


@dataclass(frozen=True)
class RuntimeObservability:
    logger: logging.Logger

    def log_runtime_started(self, *, entity_count: int, interval_ms: int, seed: int | None) -> None:
        self.logger.info(
            "runtime.started",
            extra={
                "fields": {
                    "entity_count": entity_count,
                    "interval_ms": interval_ms,
                    "seed": seed,
                }
            },
        )

    def log_runtime_stopped(self) -> None:
        self.logger.info("runtime.stopped", extra={"fields": {}})

    def log_fleet_status(
        self,
        *,
        health: HealthStatus,
        load: LoadBalanceStatus,
        update: UpdateStatus,
    ) -> None:
        self.logger.info(
            "runtime.fleet_status",
            extra={
                "fields": {
                    "health": health.overall,
                    "health_message": health.message,
                    "load_balance": load.status,
                    "load_balance_message": load.message,
                    "is_updating": update.is_updating,
                    "last_update_ms": update.last_update_ms,
                }
            },
        )


@dataclass(frozen=True)
class ObservabilityBundle:
    runtime: RuntimeObservability
    telemetry: Observability


class _FieldsFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "fields"):
            record.fields = {}
        return True


def bootstrap_observability(*, log_dir: str) -> ObservabilityBundle:
    _setup_logging(log_dir=log_dir)
    return ObservabilityBundle(
        runtime=RuntimeObservability(logger=logging.getLogger("runtime")),
        telemetry=Observability(
            logger=StdlibLogger(logging.getLogger("fleet_telemetry")),
            metrics=NullMetrics(),
        ),
    )


def _setup_logging(*, log_dir: str) -> None:
    os.makedirs(log_dir, exist_ok=True)
    fields_filter = _FieldsFilter()
    handler = logging.FileHandler(os.path.join(log_dir, "fleet-telemetry.log"))
    handler.addFilter(fields_filter)
    formatter = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s | %(fields)s"
    )
    handler.setFormatter(formatter)
    logging.basicConfig(
        level=logging.INFO,
        handlers=[handler],
    )
    logging.getLogger("fleet_telemetry").setLevel(logging.INFO)
    logging.getLogger("runtime").setLevel(logging.DEBUG)
