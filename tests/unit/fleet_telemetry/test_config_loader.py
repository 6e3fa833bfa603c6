import os
import tempfile
import unittest

from fleet_telemetry.config import (
    EntityConfig,
    FleetConfig,
    LedgerConfig,
    LedgerProbabilities,
    SchedulerConfig,
    TelemetryConfig,
    load_config,
    load_default_config,
    validate_config,
)


class TestConfigLoader(unittest.TestCase):
    def _write(self, text: str) -> str:
        handle = tempfile.NamedTemporaryFile("w", suffix=".yaml", delete=False)
        with handle:
            handle.write(text)
        self.addCleanup(os.remove, handle.name)
        return handle.name

    def test_packaged_default_matches_dataclass_defaults(self) -> None:
        self.assertEqual(load_default_config(), TelemetryConfig())

    def test_partial_file_keeps_other_defaults(self) -> None:
        path = self._write(
            "scheduler:\n"
            "  tick_interval_ms: 250\n"
            "ledgers:\n"
            "  probabilities:\n"
            "    alert_emission: 0.5\n"
        )
        config = load_config(path)

        self.assertEqual(config.scheduler.tick_interval_ms, 250)
        self.assertEqual(config.ledgers.probabilities.alert_emission, 0.5)
        self.assertEqual(config.ledgers.probabilities.queued_to_running, 0.1)
        self.assertEqual(config.history.capacity, 300)
        self.assertEqual(len(config.fleet.entities), 8)

    def test_fleet_entities_are_parsed(self) -> None:
        path = self._write(
            "fleet:\n"
            "  entities:\n"
            "    - entity_id: edge-1\n"
            "      name: edge-proxy\n"
            "      region: sa-east-1\n"
        )
        config = load_config(path)
        self.assertEqual(
            config.fleet.entities,
            (EntityConfig(entity_id="edge-1", name="edge-proxy", region="sa-east-1"),),
        )

    def test_unknown_keys_rejected(self) -> None:
        path = self._write("scheduler:\n  tick_interval: 10\n")
        with self.assertRaises(ValueError) as ctx:
            load_config(path)
        self.assertIn("unknown scheduler keys: tick_interval", str(ctx.exception))

        path = self._write("metrics:\n  enabled: true\n")
        with self.assertRaises(ValueError):
            load_config(path)

    def test_wrong_types_rejected(self) -> None:
        path = self._write("history:\n  capacity: true\n")
        with self.assertRaises(ValueError):
            load_config(path)

        path = self._write("- not\n- a mapping\n")
        with self.assertRaises(ValueError):
            load_config(path)

    def test_duplicate_entities_rejected(self) -> None:
        path = self._write(
            "fleet:\n"
            "  entities:\n"
            "    - {entity_id: a, name: one, region: r}\n"
            "    - {entity_id: a, name: two, region: r}\n"
        )
        with self.assertRaises(ValueError) as ctx:
            load_config(path)
        self.assertIn("duplicate entity_id: a", str(ctx.exception))


class TestValidateConfig(unittest.TestCase):
    def test_defaults_are_valid(self) -> None:
        validate_config(TelemetryConfig())

    def test_non_positive_interval_rejected(self) -> None:
        with self.assertRaises(ValueError):
            validate_config(TelemetryConfig(scheduler=SchedulerConfig(tick_interval_ms=0)))

    def test_probabilities_must_be_within_unit_interval(self) -> None:
        config = TelemetryConfig(
            ledgers=LedgerConfig(probabilities=LedgerProbabilities(alert_emission=1.5))
        )
        with self.assertRaises(ValueError):
            validate_config(config)

    def test_initial_alerts_bounded_by_cap(self) -> None:
        with self.assertRaises(ValueError):
            validate_config(TelemetryConfig(ledgers=LedgerConfig(alert_cap=2, initial_alerts=3)))

    def test_empty_fleet_rejected(self) -> None:
        with self.assertRaises(ValueError):
            validate_config(TelemetryConfig(fleet=FleetConfig(entities=())))


if __name__ == "__main__":
    unittest.main()
