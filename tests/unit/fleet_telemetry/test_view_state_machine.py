import unittest
from collections.abc import Mapping

from fleet_telemetry.classifier import classify
from fleet_telemetry.contracts import Entity, InvalidTimeRangeError, MetricSample
from fleet_telemetry.history import HistoryStore
from fleet_telemetry.observability import NullMetrics, Observability
from fleet_telemetry.snapshots import SnapshotBuilder
from fleet_telemetry.view_state import (
    MissingLookbackError,
    PlaybackUnavailableError,
    ViewStateMachine,
)

NOW_MS = 10_000_000
STEP_MS = 1_500
SAMPLES_PER_ENTITY = 40
ENTITY_IDS = ("server-1", "server-2", "server-3")


class FakeLogger:
    def __init__(self) -> None:
        self.calls: list[dict[str, object]] = []

    def log(self, level: int, message: str, fields: Mapping[str, object]) -> None:
        self.calls.append({"level": level, "message": message, "fields": dict(fields)})


def _sample(timestamp_ms: int, cpu: float = 30.0) -> MetricSample:
    return MetricSample(
        cpu=cpu,
        memory=40.0,
        disk=50.0,
        network_in=300.0,
        network_out=240.0,
        load_1m=2.0,
        timestamp_ms=timestamp_ms,
    )


class TestViewStateMachine(unittest.TestCase):
    def setUp(self) -> None:
        self.live = HistoryStore(capacity=SAMPLES_PER_ENTITY + 10)
        start_ms = NOW_MS - (SAMPLES_PER_ENTITY - 1) * STEP_MS
        for index in range(SAMPLES_PER_ENTITY):
            for offset, entity_id in enumerate(ENTITY_IDS):
                self.live.append(entity_id, _sample(start_ms + index * STEP_MS, cpu=offset))
        self.entities = [
            Entity(
                id=entity_id,
                name=entity_id,
                region="us-east-1",
                latest_sample=self.live.latest(entity_id),
                status=classify(self.live.latest(entity_id)),
            )
            for entity_id in ENTITY_IDS
        ]
        self.now = [NOW_MS]
        self.logger = FakeLogger()
        self.machine = ViewStateMachine(
            live=self.live,
            builder=SnapshotBuilder(lookback_cap_minutes=15),
            entities=lambda: self.entities,
            clock_ms=lambda: self.now[0],
            output_cap=50,
            observability=Observability(logger=self.logger, metrics=NullMetrics()),
        )

    def _append_live(self, timestamp_ms: int) -> None:
        for entity_id in ENTITY_IDS:
            self.live.append(entity_id, _sample(timestamp_ms))

    def test_defaults_to_live(self) -> None:
        state = self.machine.state
        self.assertEqual(state.view_mode, "live")
        self.assertIsNone(state.selected_entity_id)
        self.assertIsNone(state.time_range)
        self.assertEqual(state.playback_index, 0)
        self.assertIsNone(self.machine.snapshot)

    def test_active_history_is_chronological_and_capped(self) -> None:
        history = self.machine.active_history()
        timestamps = [sample.timestamp_ms for sample in history]

        self.assertEqual(len(history), 50)
        self.assertEqual(timestamps, sorted(timestamps))
        self.assertEqual(timestamps[-1], NOW_MS)

    def test_round_trip_through_historical_leaves_live_untouched(self) -> None:
        before = {entity_id: self.live.get(entity_id) for entity_id in ENTITY_IDS}
        version = self.live.version

        self.machine.set_view_mode("historical", lookback_minutes=5)
        self.machine.set_view_mode("live")

        self.assertEqual(self.live.version, version)
        for entity_id, samples in before.items():
            self.assertEqual(self.live.get(entity_id), samples)
        self.assertEqual(self.machine.state.view_mode, "live")

    def test_historical_requires_lookback(self) -> None:
        with self.assertRaises(MissingLookbackError):
            self.machine.set_view_mode("historical")
        self.assertEqual(self.machine.state.view_mode, "live")

    def test_unknown_mode_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.machine.set_view_mode("replay")  # type: ignore[arg-type]

    def test_playback_index_bounds_per_entity_series(self) -> None:
        self.machine.set_view_mode("historical", lookback_minutes=5)
        previous: dict[str, tuple[MetricSample, ...]] = {}
        for index in (10, 20, 30):
            self.machine.set_playback_index(index)
            series = self.machine.active_series()
            self.assertEqual(set(series), set(ENTITY_IDS))
            for entity_id, samples in series.items():
                self.assertLessEqual(len(samples), index)
                earlier = previous.get(entity_id, ())
                self.assertEqual(samples[: len(earlier)], earlier)
            previous = series

    def test_index_zero_shows_the_whole_window(self) -> None:
        self.machine.set_view_mode("historical", lookback_minutes=5)
        for samples in self.machine.active_series().values():
            self.assertEqual(len(samples), SAMPLES_PER_ENTITY)

    def test_mode_switch_is_never_served_from_stale_cache(self) -> None:
        self.machine.active_history()
        self.machine.set_view_mode("historical", lookback_minutes=5)
        self._append_live(NOW_MS + STEP_MS)

        historical = self.machine.active_history()
        self.assertEqual(historical[-1].timestamp_ms, NOW_MS)

        self.machine.set_view_mode("live")
        live = self.machine.active_history()
        self.assertEqual(live[-1].timestamp_ms, NOW_MS + STEP_MS)

    def test_live_view_follows_appends(self) -> None:
        self.machine.set_selected_entity("server-2")
        first = self.machine.active_history()
        self.live.append("server-2", _sample(NOW_MS + STEP_MS))
        second = self.machine.active_history()

        self.assertEqual(len(second), len(first) + 1)
        self.assertEqual(second[-1].timestamp_ms, NOW_MS + STEP_MS)

    def test_selected_entity_restricts_series(self) -> None:
        self.machine.set_selected_entity("server-3")
        series = self.machine.active_series()

        self.assertEqual(list(series), ["server-3"])
        self.assertEqual(len(self.machine.active_history()), SAMPLES_PER_ENTITY)

        self.machine.set_selected_entity("missing")
        self.assertEqual(self.machine.active_history(), [])

    def test_time_range_filters_inclusively(self) -> None:
        start_ms = NOW_MS - 2 * STEP_MS
        self.machine.set_time_range(start_ms, NOW_MS)
        history = self.machine.active_history()

        self.assertEqual(len(history), 3 * len(ENTITY_IDS))
        for sample in history:
            self.assertTrue(start_ms <= sample.timestamp_ms <= NOW_MS)

        self.machine.set_time_range(None, None)
        self.assertEqual(len(self.machine.active_history()), 50)

    def test_invalid_time_ranges_rejected(self) -> None:
        with self.assertRaises(InvalidTimeRangeError):
            self.machine.set_time_range(NOW_MS, NOW_MS - 1)
        with self.assertRaises(InvalidTimeRangeError):
            self.machine.set_time_range(NOW_MS, None)
        self.assertIsNone(self.machine.state.time_range)

    def test_advance_playback_wraps(self) -> None:
        self.machine.set_view_mode("historical", lookback_minutes=5)
        self.machine.set_playback_index(SAMPLES_PER_ENTITY - 1)

        self.assertEqual(self.machine.advance_playback(), SAMPLES_PER_ENTITY)
        self.assertEqual(self.machine.advance_playback(), 1)

        self.machine.set_playback_index(SAMPLES_PER_ENTITY - 2)
        self.assertEqual(self.machine.advance_playback(5), 3)

    def test_advance_playback_requires_historical_mode(self) -> None:
        with self.assertRaises(PlaybackUnavailableError):
            self.machine.advance_playback()

    def test_negative_playback_index_rejected(self) -> None:
        with self.assertRaises(ValueError):
            self.machine.set_playback_index(-1)

    def test_entering_historical_rewinds_playback(self) -> None:
        self.machine.set_view_mode("historical", lookback_minutes=5)
        self.machine.set_playback_index(12)
        self.machine.set_view_mode("historical", lookback_minutes=2)

        self.assertEqual(self.machine.state.playback_index, 0)
        self.assertEqual(self.machine.snapshot.lookback_minutes, 2)

    def test_discard_snapshot_returns_to_live(self) -> None:
        self.machine.set_view_mode("historical", lookback_minutes=5)
        self.machine.discard_snapshot()

        self.assertEqual(self.machine.state.view_mode, "live")
        self.assertIsNone(self.machine.snapshot)
        self.assertEqual(len(self.machine.playback), 0)

    def test_mode_changes_are_logged(self) -> None:
        self.machine.set_view_mode("historical", lookback_minutes=5)
        messages = [call["message"] for call in self.logger.calls]

        self.assertIn("fleet_telemetry.snapshot_built", messages)
        changed = [
            call
            for call in self.logger.calls
            if call["message"] == "fleet_telemetry.view_mode_changed"
        ]
        self.assertEqual(changed[-1]["fields"]["view_mode"], "historical")
        self.assertEqual(changed[-1]["fields"]["lookback_minutes"], 5)

    def test_setting_live_while_live_is_not_logged(self) -> None:
        self.machine.set_view_mode("live")
        self.assertEqual(self.logger.calls, [])

        self.machine.set_view_mode("historical", lookback_minutes=5)
        self.machine.set_view_mode("live")
        self.machine.set_view_mode("live")
        changed = [
            call["fields"]
            for call in self.logger.calls
            if call["message"] == "fleet_telemetry.view_mode_changed"
        ]
        self.assertEqual(
            [(fields["previous_mode"], fields["view_mode"]) for fields in changed],
            [("live", "historical"), ("historical", "live")],
        )


if __name__ == "__main__":
    unittest.main()
