from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from fleet_telemetry.contracts import Alert, HistoricalSnapshot
from fleet_telemetry.lifecycle import Lifecycle, SchedulerState


class StructuredLogger(Protocol):
    def log(self, level: int, message: str, fields: Mapping[str, object]) -> None: ...


class MetricsRecorder(Protocol):
    def increment(
        self, name: str, value: int = 1, tags: Mapping[str, str] | None = None
    ) -> None: ...

    def observe(
        self, name: str, value: float, tags: Mapping[str, str] | None = None
    ) -> None: ...

    def gauge(
        self, name: str, value: float, tags: Mapping[str, str] | None = None
    ) -> None: ...


@dataclass(frozen=True)
class StdlibLogger:
    logger: logging.Logger

    def log(self, level: int, message: str, fields: Mapping[str, object]) -> None:
        self.logger.log(level, message, extra={"fields": dict(fields)})


@dataclass(frozen=True)
class NullLogger:
    def log(self, level: int, message: str, fields: Mapping[str, object]) -> None:
        return None


@dataclass(frozen=True)
class NullMetrics:
    def increment(
        self, name: str, value: int = 1, tags: Mapping[str, str] | None = None
    ) -> None:
        return None

    def observe(
        self, name: str, value: float, tags: Mapping[str, str] | None = None
    ) -> None:
        return None

    def gauge(
        self, name: str, value: float, tags: Mapping[str, str] | None = None
    ) -> None:
        return None


@dataclass(frozen=True)
class SchedulerHealth:
    ready: bool
    state: str
    consecutive_failures: int
    last_update_ms: int | None


@dataclass(frozen=True)
class Observability:
    logger: StructuredLogger
    metrics: MetricsRecorder

    @classmethod
    def null(cls) -> Observability:
        return cls(logger=NullLogger(), metrics=NullMetrics())

    def log_tick(self, *, tick_ts_ms: int, entity_count: int, duration_ms: int) -> None:
        self.logger.log(
            logging.DEBUG,
            "fleet_telemetry.tick",
            {
                "tick_ts_ms": tick_ts_ms,
                "entity_count": entity_count,
                "duration_ms": duration_ms,
            },
        )
        self.metrics.increment("fleet_telemetry.scheduler.ticks", tags={"status": "success"})
        self.metrics.observe("fleet_telemetry.scheduler.tick_duration_ms", float(duration_ms))

    def log_tick_skipped(self, *, tick_ts_ms: int) -> None:
        self.logger.log(logging.DEBUG, "fleet_telemetry.tick_skipped", {"tick_ts_ms": tick_ts_ms})
        self.metrics.increment("fleet_telemetry.scheduler.ticks", tags={"status": "skipped"})

    def log_tick_failure(
        self,
        *,
        tick_ts_ms: int,
        error_kind: str,
        error_detail: str,
        consecutive_failures: int,
    ) -> None:
        self.logger.log(
            logging.WARNING,
            "fleet_telemetry.tick_failure",
            {
                "tick_ts_ms": tick_ts_ms,
                "error_kind": error_kind,
                "error_detail": error_detail,
                "consecutive_failures": consecutive_failures,
            },
        )
        self.metrics.increment(
            "fleet_telemetry.scheduler.ticks",
            tags={"status": "failure", "error_kind": error_kind},
        )

    def log_scheduler_state(self, *, state: SchedulerState, interval_ms: int) -> None:
        self.logger.log(
            logging.INFO,
            "fleet_telemetry.scheduler_state",
            {"state": state.value, "interval_ms": interval_ms},
        )

    def log_view_mode_changed(
        self, *, previous_mode: str, view_mode: str, lookback_minutes: int | None
    ) -> None:
        self.logger.log(
            logging.INFO,
            "fleet_telemetry.view_mode_changed",
            {
                "previous_mode": previous_mode,
                "view_mode": view_mode,
                "lookback_minutes": lookback_minutes,
            },
        )

    def log_snapshot_built(self, snapshot: HistoricalSnapshot, *, sample_count: int) -> None:
        self.logger.log(
            logging.INFO,
            "fleet_telemetry.snapshot_built",
            {
                "lookback_minutes": snapshot.lookback_minutes,
                "start_ms": snapshot.time_range.start_ms,
                "end_ms": snapshot.time_range.end_ms,
                "entity_count": len(snapshot.entities),
                "series_points": len(snapshot.aggregated_series),
                "sample_count": sample_count,
            },
        )
        self.metrics.increment("fleet_telemetry.snapshots.built")
        self.metrics.gauge("fleet_telemetry.playback.samples", float(sample_count))

    def log_refresh(self, *, entity_count: int, task_count: int, alert_count: int) -> None:
        self.logger.log(
            logging.INFO,
            "fleet_telemetry.refresh",
            {
                "entity_count": entity_count,
                "task_count": task_count,
                "alert_count": alert_count,
            },
        )
        self.metrics.increment("fleet_telemetry.refreshes")

    def log_alert_emitted(self, alert: Alert) -> None:
        self.logger.log(
            logging.INFO,
            "fleet_telemetry.alert_emitted",
            {
                "alert_id": alert.id,
                "source": alert.source,
                "severity": alert.severity,
                "message": alert.message,
            },
        )
        self.metrics.increment("fleet_telemetry.alerts.emitted", tags={"severity": alert.severity})

    def record_history_depth(self, *, samples: int) -> None:
        self.metrics.gauge("fleet_telemetry.history.samples", float(samples))


def compute_health(
    lifecycle: Lifecycle, *, consecutive_failures: int, last_update_ms: int | None
) -> SchedulerHealth:
    ready = lifecycle.state == SchedulerState.RUNNING and consecutive_failures == 0
    return SchedulerHealth(
        ready=ready,
        state=str(lifecycle.state.value),
        consecutive_failures=consecutive_failures,
        last_update_ms=last_update_ms,
    )
