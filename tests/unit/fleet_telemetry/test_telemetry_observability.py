import logging
import unittest
from collections.abc import Mapping

from fleet_telemetry.contracts import Alert
from fleet_telemetry.failure_handling import TickFailure, TickFailureHandler
from fleet_telemetry.lifecycle import Lifecycle
from fleet_telemetry.observability import (
    NullMetrics,
    Observability,
    StdlibLogger,
    compute_health,
)


class FakeLogger:
    def __init__(self) -> None:
        self.calls: list[dict[str, object]] = []

    def log(self, level: int, message: str, fields: Mapping[str, object]) -> None:
        self.calls.append({"level": level, "message": message, "fields": dict(fields)})


class FakeMetrics:
    def __init__(self) -> None:
        self.increments: list[tuple[str, int, Mapping[str, str] | None]] = []
        self.observations: list[tuple[str, float, Mapping[str, str] | None]] = []
        self.gauges: list[tuple[str, float, Mapping[str, str] | None]] = []

    def increment(
        self, name: str, value: int = 1, tags: Mapping[str, str] | None = None
    ) -> None:
        self.increments.append((name, value, tags))

    def observe(
        self, name: str, value: float, tags: Mapping[str, str] | None = None
    ) -> None:
        self.observations.append((name, value, tags))

    def gauge(
        self, name: str, value: float, tags: Mapping[str, str] | None = None
    ) -> None:
        self.gauges.append((name, value, tags))


class TestObservability(unittest.TestCase):
    def setUp(self) -> None:
        self.logger = FakeLogger()
        self.metrics = FakeMetrics()
        self.observability = Observability(logger=self.logger, metrics=self.metrics)

    def test_tick_logs_and_counts(self) -> None:
        self.observability.log_tick(tick_ts_ms=10, entity_count=8, duration_ms=3)

        call = self.logger.calls[0]
        self.assertEqual(call["level"], logging.DEBUG)
        self.assertEqual(call["message"], "fleet_telemetry.tick")
        self.assertEqual(call["fields"]["entity_count"], 8)
        self.assertEqual(
            self.metrics.increments,
            [("fleet_telemetry.scheduler.ticks", 1, {"status": "success"})],
        )
        self.assertEqual(
            self.metrics.observations,
            [("fleet_telemetry.scheduler.tick_duration_ms", 3.0, None)],
        )

    def test_failure_handler_logs_and_counts(self) -> None:
        handler = TickFailureHandler(observability=self.observability)

        def fail() -> None:
            raise TickFailure("clock_regression", "tick precedes buffer")

        self.assertFalse(handler.run(fail, tick_ts_ms=5))
        self.assertFalse(handler.run(fail, tick_ts_ms=6))
        self.assertTrue(handler.run(lambda: None, tick_ts_ms=7))

        failures = [call for call in self.logger.calls if call["level"] == logging.WARNING]
        self.assertEqual(
            [call["fields"]["consecutive_failures"] for call in failures], [1, 2]
        )
        self.assertEqual(failures[0]["fields"]["error_kind"], "clock_regression")
        self.assertEqual(handler.consecutive_failures, 0)
        self.assertEqual(handler.total_failures, 2)
        self.assertEqual(
            self.metrics.increments[0],
            (
                "fleet_telemetry.scheduler.ticks",
                1,
                {"status": "failure", "error_kind": "clock_regression"},
            ),
        )

    def test_alert_emission_is_tagged_by_severity(self) -> None:
        alert = Alert(
            id="alert-9",
            timestamp_ms=1,
            source="api-gateway",
            severity="critical",
            message="Cache miss rate high",
        )
        self.observability.log_alert_emitted(alert)

        self.assertEqual(self.logger.calls[0]["fields"]["alert_id"], "alert-9")
        self.assertEqual(
            self.metrics.increments,
            [("fleet_telemetry.alerts.emitted", 1, {"severity": "critical"})],
        )

    def test_history_depth_gauge(self) -> None:
        self.observability.record_history_depth(samples=2400)
        self.assertEqual(self.metrics.gauges, [("fleet_telemetry.history.samples", 2400.0, None)])

    def test_stdlib_logger_passes_fields(self) -> None:
        logger = StdlibLogger(logging.getLogger("fleet_telemetry.test"))
        with self.assertLogs("fleet_telemetry.test", level="INFO") as captured:
            logger.log(logging.INFO, "fleet_telemetry.refresh", {"entity_count": 8})

        record = captured.records[0]
        self.assertEqual(record.getMessage(), "fleet_telemetry.refresh")
        self.assertEqual(record.fields, {"entity_count": 8})

    def test_null_observability_accepts_everything(self) -> None:
        observability = Observability.null()
        observability.log_refresh(entity_count=1, task_count=1, alert_count=1)
        observability.record_history_depth(samples=1)
        self.assertIsInstance(observability.metrics, NullMetrics)


class TestComputeHealth(unittest.TestCase):
    def test_ready_only_when_running_without_failures(self) -> None:
        lifecycle = Lifecycle()
        self.assertFalse(
            compute_health(lifecycle, consecutive_failures=0, last_update_ms=None).ready
        )

        lifecycle.start()
        self.assertTrue(compute_health(lifecycle, consecutive_failures=0, last_update_ms=1).ready)
        degraded = compute_health(lifecycle, consecutive_failures=2, last_update_ms=1)
        self.assertFalse(degraded.ready)
        self.assertEqual(degraded.consecutive_failures, 2)

        lifecycle.stop()
        self.assertEqual(
            compute_health(lifecycle, consecutive_failures=0, last_update_ms=1).state, "stopped"
        )


if __name__ == "__main__":
    unittest.main()
