from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace

from fleet_telemetry.aggregator import aggregate, health_status, load_balance
from fleet_telemetry.classifier import DEFAULT_THRESHOLDS, StatusThresholds, classify
from fleet_telemetry.config.schema import TelemetryConfig, validate_config
from fleet_telemetry.contracts import (
    Alert,
    Entity,
    HealthStatus,
    HistoricalSnapshot,
    LoadBalanceStatus,
    MetricSample,
    Task,
    TaskStatus,
    TimeRange,
    UpdateStatus,
    ViewMode,
)
from fleet_telemetry.failure_handling import TickFailure
from fleet_telemetry.history import HistoryStore
from fleet_telemetry.ledgers import AlertLedger, TaskLedger
from fleet_telemetry.observability import NullMetrics, Observability, StdlibLogger
from fleet_telemetry.sampler import MetricSampler, RandomSource
from fleet_telemetry.scheduler import UpdateScheduler
from fleet_telemetry.snapshots import SnapshotBuilder
from fleet_telemetry.system_state import SystemState
from fleet_telemetry.view_state import ViewState, ViewStateMachine

ClockMs = Callable[[], int]


@dataclass(frozen=True)
class _FleetState:
    entities: tuple[Entity, ...]
    buffers: dict[str, list[MetricSample]]
    tasks: TaskLedger
    alerts: AlertLedger


class TelemetryService:
    """Query surface over the simulated fleet.

    Every public method takes the service lock, so a read never observes a
    tick, a mode switch or a refresh half-applied. Returned collections are
    fresh lists of frozen records.
    """

    def __init__(
        self,
        *,
        config: TelemetryConfig | None = None,
        state: SystemState | None = None,
        rng: RandomSource | None = None,
        clock_ms: ClockMs | None = None,
        sampler: MetricSampler | None = None,
        thresholds: StatusThresholds = DEFAULT_THRESHOLDS,
        observability: Observability | None = None,
    ) -> None:
        self._config = config or TelemetryConfig()
        validate_config(self._config)
        self._state = state or SystemState()
        self._rng = rng or random.Random()
        self._clock_ms = clock_ms or _now_ms
        self._sampler = sampler or MetricSampler(rng=self._rng)
        self._thresholds = thresholds
        self._observability = observability or Observability(
            logger=StdlibLogger(logging.getLogger("fleet_telemetry")),
            metrics=NullMetrics(),
        )
        self._lock = threading.RLock()
        self._history = HistoryStore(capacity=self._config.history.capacity)
        self._view = ViewStateMachine(
            live=self._history,
            builder=SnapshotBuilder(
                lookback_cap_minutes=self._config.snapshots.lookback_cap_minutes
            ),
            entities=lambda: self._entities,
            clock_ms=self._clock_ms,
            output_cap=self._config.history.active_output_cap,
            observability=self._observability,
        )
        self._scheduler = UpdateScheduler(
            config=self._config.scheduler,
            state=self._state,
            action=self._scheduled_update,
            observability=self._observability,
            clock_ms=self._clock_ms,
        )
        fleet = self._generate_fleet(self._clock_ms())
        self._entities: tuple[Entity, ...] = fleet.entities
        self._tasks: TaskLedger = fleet.tasks
        self._alerts: AlertLedger = fleet.alerts
        self._history.load(fleet.buffers)

    @property
    def config(self) -> TelemetryConfig:
        return self._config

    @property
    def system_state(self) -> SystemState:
        return self._state

    @property
    def scheduler(self) -> UpdateScheduler:
        return self._scheduler

    # Scheduling

    def start_auto_update(self) -> None:
        self._scheduler.start()

    def stop_auto_update(self) -> None:
        self._scheduler.stop()

    def get_update_status(self) -> UpdateStatus:
        return self._scheduler.status()

    def update_data(self, *, now_ms: int | None = None) -> None:
        """Run one pass of the update pipeline for every entity."""
        with self._lock:
            tick_ts_ms = self._sample_ts(now_ms if now_ms is not None else self._clock_ms())
            try:
                fresh = [
                    (entity, self._sampler.sample(entity.latest_sample, timestamp_ms=tick_ts_ms))
                    for entity in self._entities
                ]
            except Exception as exc:
                raise TickFailure("sample_failure", str(exc)) from exc

            updated: list[Entity] = []
            for entity, sample in fresh:
                self._history.append(entity.id, sample)
                updated.append(
                    replace(
                        entity,
                        latest_sample=sample,
                        status=classify(sample, self._thresholds),
                    )
                )
            self._entities = tuple(updated)
            self._tasks.advance(now_ms=tick_ts_ms)
            alert = self._alerts.maybe_emit(
                sources=[entity.name for entity in self._entities], now_ms=tick_ts_ms
            )
        if alert is not None:
            self._observability.log_alert_emitted(alert)

    def refresh_data(self) -> None:
        """Regenerate entities, tasks, alerts and history in one step."""
        with self._lock:
            fleet = self._generate_fleet(self._clock_ms())
            self._history.load(fleet.buffers)
            self._entities = fleet.entities
            self._tasks = fleet.tasks
            self._alerts = fleet.alerts
            self._view.discard_snapshot()
        self._observability.log_refresh(
            entity_count=len(fleet.entities),
            task_count=len(fleet.tasks.tasks()),
            alert_count=len(fleet.alerts),
        )

    # Fleet queries

    def get_servers(self) -> list[Entity]:
        with self._lock:
            return list(self._entities)

    def get_server(self, entity_id: str) -> Entity | None:
        with self._lock:
            for entity in self._entities:
                if entity.id == entity_id:
                    return entity
            return None

    def get_server_history(
        self, entity_id: str, time_range: TimeRange | None = None
    ) -> list[MetricSample]:
        with self._lock:
            return self._history.get(entity_id, time_range)

    def get_aggregated_metrics(self) -> MetricSample:
        with self._lock:
            return aggregate(
                self._entities, sampler=self._sampler, timestamp_ms=self._clock_ms()
            )

    def get_health_status(self) -> HealthStatus:
        with self._lock:
            return health_status(self._entities, self._thresholds)

    def get_load_balance_status(self) -> LoadBalanceStatus:
        with self._lock:
            return load_balance(self._entities)

    # Tasks and alerts

    def get_tasks(self, filter: str | None = None) -> list[Task]:
        with self._lock:
            return self._tasks.filter(filter)

    def get_task(self, task_id: str) -> Task | None:
        with self._lock:
            return self._tasks.get(task_id)

    def update_task_status(self, task_id: str, status: TaskStatus) -> Task | None:
        with self._lock:
            return self._tasks.set_status(task_id, status, now_ms=self._clock_ms())

    def complete_task(self, task_id: str) -> Task | None:
        with self._lock:
            return self._tasks.complete(task_id, now_ms=self._clock_ms())

    def get_alerts(self) -> list[Alert]:
        with self._lock:
            return self._alerts.alerts()

    def get_alert(self, alert_id: str) -> Alert | None:
        with self._lock:
            return self._alerts.get(alert_id)

    def acknowledge_alert(self, alert_id: str) -> Alert | None:
        with self._lock:
            return self._alerts.acknowledge(alert_id)

    def clear_alert(self, alert_id: str) -> bool:
        with self._lock:
            return self._alerts.remove(alert_id)

    # View state

    def get_view_state(self) -> ViewState:
        with self._lock:
            return self._view.state

    def set_view_mode(self, mode: ViewMode, *, lookback_minutes: int | None = None) -> None:
        with self._lock:
            self._view.set_view_mode(mode, lookback_minutes=lookback_minutes)

    def set_selected_entity(self, entity_id: str | None) -> None:
        with self._lock:
            self._view.set_selected_entity(entity_id)

    def set_time_range(self, start_ms: int | None, end_ms: int | None) -> None:
        with self._lock:
            self._view.set_time_range(start_ms, end_ms)

    def set_playback_index(self, index: int) -> None:
        with self._lock:
            self._view.set_playback_index(index)

    def advance_playback(self, steps: int = 1) -> int:
        with self._lock:
            return self._view.advance_playback(steps)

    def create_historical_snapshot(self, lookback_minutes: int) -> None:
        with self._lock:
            self._view.create_snapshot(lookback_minutes)

    def get_historical_snapshot(self) -> HistoricalSnapshot | None:
        with self._lock:
            return self._view.snapshot

    def get_filtered_time_series_data(self) -> list[MetricSample]:
        with self._lock:
            return self._view.active_history()

    def get_filtered_series_by_server(self) -> dict[str, list[MetricSample]]:
        with self._lock:
            return {
                entity_id: list(samples)
                for entity_id, samples in self._view.active_series().items()
            }

    def get_selected_metric_series(self) -> list[tuple[int, float]]:
        with self._lock:
            metric = self._state.selected_metric
            return [
                (sample.timestamp_ms, float(getattr(sample, metric)))
                for sample in self._view.active_history()
            ]

    def _scheduled_update(self, tick_ts_ms: int) -> None:
        started = time.monotonic()
        self.update_data(now_ms=tick_ts_ms)
        self._observability.log_tick(
            tick_ts_ms=tick_ts_ms,
            entity_count=len(self._entities),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        self._observability.record_history_depth(samples=len(self._history))

    def _sample_ts(self, tick_ts_ms: int) -> int:
        # A clock step back reuses the newest buffered timestamp until the clock catches up.
        newest = max(
            (
                latest.timestamp_ms
                for latest in (self._history.latest(entity.id) for entity in self._entities)
                if latest is not None
            ),
            default=tick_ts_ms,
        )
        return max(tick_ts_ms, newest)

    def _generate_fleet(self, now_ms: int) -> _FleetState:
        config = self._config
        capacity = config.history.capacity
        interval_ms = config.scheduler.tick_interval_ms
        entities: list[Entity] = []
        buffers: dict[str, list[MetricSample]] = {}
        for entity_config in config.fleet.entities:
            samples = _prefill(
                self._sampler, count=capacity, interval_ms=interval_ms, end_ms=now_ms
            )
            latest = samples[-1]
            buffers[entity_config.entity_id] = samples
            entities.append(
                Entity(
                    id=entity_config.entity_id,
                    name=entity_config.name,
                    region=entity_config.region,
                    latest_sample=latest,
                    status=classify(latest, self._thresholds),
                )
            )
        probabilities = config.ledgers.probabilities
        tasks = TaskLedger.generate(rng=self._rng, probabilities=probabilities, now_ms=now_ms)
        alerts = AlertLedger.generate(
            rng=self._rng,
            probabilities=probabilities,
            cap=config.ledgers.alert_cap,
            sources=[entity.name for entity in entities],
            count=config.ledgers.initial_alerts,
            now_ms=now_ms,
        )
        return _FleetState(
            entities=tuple(entities), buffers=buffers, tasks=tasks, alerts=alerts
        )


def _prefill(
    sampler: MetricSampler, *, count: int, interval_ms: int, end_ms: int
) -> list[MetricSample]:
    samples: list[MetricSample] = []
    previous: MetricSample | None = None
    for index in range(count):
        timestamp_ms = end_ms - (count - 1 - index) * interval_ms
        previous = sampler.sample(previous, timestamp_ms=timestamp_ms)
        samples.append(previous)
    return samples


def _now_ms() -> int:
    return int(time.time() * 1000)