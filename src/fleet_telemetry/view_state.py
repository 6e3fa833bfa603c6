from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, replace

from fleet_telemetry.contracts import (
    VIEW_MODE_HISTORICAL,
    VIEW_MODE_LIVE,
    Entity,
    HistoricalSnapshot,
    InvalidTimeRangeError,
    MetricSample,
    TimeRange,
    ViewMode,
)
from fleet_telemetry.history import HistoryStore
from fleet_telemetry.observability import Observability
from fleet_telemetry.snapshots import SnapshotBuilder

ClockMs = Callable[[], int]
EntitiesFn = Callable[[], Sequence[Entity]]

_CacheKey = tuple[object, ...]


class MissingLookbackError(ValueError):
    """Raised when historical mode is requested without a look-back window."""


class PlaybackUnavailableError(RuntimeError):
    """Raised when the playback cursor is moved outside historical mode."""


@dataclass(frozen=True)
class ViewState:
    view_mode: ViewMode = VIEW_MODE_LIVE
    selected_entity_id: str | None = None
    time_range_start_ms: int | None = None
    time_range_end_ms: int | None = None
    playback_index: int = 0

    @property
    def time_range(self) -> TimeRange | None:
        if self.time_range_start_ms is None or self.time_range_end_ms is None:
            return None
        return TimeRange(start_ms=self.time_range_start_ms, end_ms=self.time_range_end_ms)


@dataclass(frozen=True)
class _ActiveView:
    series: Mapping[str, tuple[MetricSample, ...]]
    combined: tuple[MetricSample, ...]


class ViewStateMachine:
    """Live/historical view state and the history it exposes.

    The machine owns the playback store and the current snapshot. It reads
    the live store but never writes to it.
    """

    def __init__(
        self,
        *,
        live: HistoryStore,
        builder: SnapshotBuilder,
        entities: EntitiesFn,
        clock_ms: ClockMs,
        output_cap: int,
        observability: Observability | None = None,
    ) -> None:
        if output_cap <= 0:
            raise ValueError("output_cap must be > 0")
        self._live = live
        self._playback = HistoryStore(capacity=live.capacity)
        self._builder = builder
        self._entities = entities
        self._clock_ms = clock_ms
        self._output_cap = output_cap
        self._observability = observability or Observability.null()
        self._state = ViewState()
        self._snapshot: HistoricalSnapshot | None = None
        self._cache_key: _CacheKey | None = None
        self._cache_value: _ActiveView | None = None

    @property
    def state(self) -> ViewState:
        return self._state

    @property
    def snapshot(self) -> HistoricalSnapshot | None:
        return self._snapshot

    @property
    def playback(self) -> HistoryStore:
        return self._playback

    def set_view_mode(self, mode: ViewMode, *, lookback_minutes: int | None = None) -> None:
        if mode not in (VIEW_MODE_LIVE, VIEW_MODE_HISTORICAL):
            raise ValueError(f"unknown view mode: {mode}")
        previous_mode = self._state.view_mode
        if mode == VIEW_MODE_HISTORICAL:
            if lookback_minutes is None:
                raise MissingLookbackError("historical mode requires lookback_minutes")
            self.create_snapshot(lookback_minutes)
            self._state = replace(self._state, view_mode=VIEW_MODE_HISTORICAL, playback_index=0)
        else:
            self._state = replace(self._state, view_mode=VIEW_MODE_LIVE, playback_index=0)
            if previous_mode == VIEW_MODE_LIVE:
                return
        self._observability.log_view_mode_changed(
            previous_mode=previous_mode,
            view_mode=mode,
            lookback_minutes=lookback_minutes,
        )

    def create_snapshot(self, lookback_minutes: int) -> HistoricalSnapshot:
        """Rebuild the snapshot and playback history, rewinding the cursor."""
        build = self._builder.build(
            entities=self._entities(),
            live=self._live,
            lookback_minutes=lookback_minutes,
            now_ms=self._clock_ms(),
        )
        self._playback.load(build.playback_buffers)
        self._snapshot = build.snapshot
        self._state = replace(self._state, playback_index=0)
        self._observability.log_snapshot_built(build.snapshot, sample_count=len(self._playback))
        return build.snapshot

    def discard_snapshot(self) -> None:
        self._snapshot = None
        self._playback.clear()
        self._state = replace(self._state, view_mode=VIEW_MODE_LIVE, playback_index=0)

    def set_selected_entity(self, entity_id: str | None) -> None:
        self._state = replace(self._state, selected_entity_id=entity_id)

    def set_time_range(self, start_ms: int | None, end_ms: int | None) -> None:
        if (start_ms is None) != (end_ms is None):
            raise InvalidTimeRangeError("time range requires both start and end, or neither")
        if start_ms is not None and end_ms is not None and start_ms > end_ms:
            raise InvalidTimeRangeError("time range start must be <= end")
        self._state = replace(
            self._state, time_range_start_ms=start_ms, time_range_end_ms=end_ms
        )

    def set_playback_index(self, index: int) -> None:
        if index < 0:
            raise ValueError("playback_index must be >= 0")
        self._state = replace(self._state, playback_index=index)

    def advance_playback(self, steps: int = 1) -> int:
        """Reveal ``steps`` more samples, looping after the window is fully shown."""
        if self._state.view_mode != VIEW_MODE_HISTORICAL:
            raise PlaybackUnavailableError("playback requires historical view mode")
        if steps <= 0:
            raise ValueError("steps must be > 0")
        longest = max(
            (len(self._playback.get(entity_id)) for entity_id in self._playback.entity_ids()),
            default=0,
        )
        if longest == 0:
            return self._state.playback_index
        index = self._state.playback_index + steps
        if index > longest:
            index = (index - 1) % longest + 1
        self._state = replace(self._state, playback_index=index)
        return index

    def active_series(self) -> dict[str, tuple[MetricSample, ...]]:
        """Per-entity samples after source selection and filtering."""
        return dict(self._active().series)

    def active_history(self) -> list[MetricSample]:
        """Chronological samples of the active view, capped to the newest ``output_cap``."""
        return list(self._active().combined)

    def _active(self) -> _ActiveView:
        state = self._state
        key: _CacheKey = (
            state.view_mode,
            state.selected_entity_id,
            state.time_range_start_ms,
            state.time_range_end_ms,
            state.playback_index,
            self._live.version,
            self._playback.version,
        )
        if self._cache_value is None or key != self._cache_key:
            self._cache_value = self._derive(state)
            self._cache_key = key
        return self._cache_value

    def _derive(self, state: ViewState) -> _ActiveView:
        historical = state.view_mode == VIEW_MODE_HISTORICAL
        source = self._playback if historical else self._live
        entity_ids: Sequence[str] = source.entity_ids()
        if state.selected_entity_id is not None:
            entity_ids = [
                entity_id for entity_id in entity_ids if entity_id == state.selected_entity_id
            ]
        time_range = state.time_range
        series: dict[str, tuple[MetricSample, ...]] = {}
        for entity_id in entity_ids:
            samples = source.get(entity_id)
            if historical and state.playback_index > 0:
                samples = samples[: state.playback_index]
            if time_range is not None:
                samples = [
                    sample for sample in samples if time_range.contains(sample.timestamp_ms)
                ]
            series[entity_id] = tuple(samples)
        combined = sorted(
            (sample for samples in series.values() for sample in samples),
            key=lambda sample: sample.timestamp_ms,
        )
        return _ActiveView(series=series, combined=tuple(combined[-self._output_cap :]))
