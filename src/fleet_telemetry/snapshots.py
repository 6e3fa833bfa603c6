from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from fleet_telemetry.aggregator import mean_sample
from fleet_telemetry.contracts import Entity, HistoricalSnapshot, MetricSample, TimeRange
from fleet_telemetry.history import HistoryStore

MINUTE_MS = 60_000


@dataclass(frozen=True)
class SnapshotBuild:
    snapshot: HistoricalSnapshot
    playback_buffers: Mapping[str, Sequence[MetricSample]]


@dataclass(frozen=True)
class SnapshotBuilder:
    lookback_cap_minutes: int

    def build(
        self,
        *,
        entities: Sequence[Entity],
        live: HistoryStore,
        lookback_minutes: int,
        now_ms: int,
    ) -> SnapshotBuild:
        """Freeze the fleet and the last ``lookback_minutes`` of live history.

        Look-backs above the cap are clamped to it. The live store is only
        read; playback buffers are independent copies.
        """
        minutes = self.effective_lookback(lookback_minutes)
        time_range = TimeRange(start_ms=now_ms - minutes * MINUTE_MS, end_ms=now_ms)
        playback_buffers = {
            entity.id: tuple(live.get(entity.id, time_range)) for entity in entities
        }
        series = _per_minute_series(
            playback_buffers.values(), time_range=time_range, minutes=minutes
        )
        snapshot = HistoricalSnapshot(
            entities=entities,
            aggregated_series=series,
            time_range=time_range,
            lookback_minutes=minutes,
        )
        return SnapshotBuild(snapshot=snapshot, playback_buffers=playback_buffers)

    def effective_lookback(self, lookback_minutes: int) -> int:
        if isinstance(lookback_minutes, bool) or not isinstance(lookback_minutes, int):
            raise ValueError("lookback_minutes must be an int")
        if lookback_minutes <= 0:
            raise ValueError("lookback_minutes must be > 0")
        return min(lookback_minutes, self.lookback_cap_minutes)


def _per_minute_series(
    buffers: Iterable[Sequence[MetricSample]],
    *,
    time_range: TimeRange,
    minutes: int,
) -> list[MetricSample]:
    buckets: list[list[MetricSample]] = [[] for _ in range(minutes)]
    for samples in buffers:
        for sample in samples:
            index = (sample.timestamp_ms - time_range.start_ms) // MINUTE_MS
            # The closing edge of the window belongs to the last minute.
            buckets[min(index, minutes - 1)].append(sample)
    series: list[MetricSample] = []
    for index, bucket in enumerate(buckets):
        if not bucket:
            continue
        series.append(
            mean_sample(bucket, timestamp_ms=time_range.start_ms + index * MINUTE_MS)
        )
    return series
