from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

DEFAULT_ENTITY_NAMES: Sequence[str] = (
    "web-server-01",
    "web-server-02",
    "db-primary",
    "db-replica",
    "cache-node-01",
    "cache-node-02",
    "api-gateway",
    "load-balancer",
)
DEFAULT_REGIONS: Sequence[str] = ("us-east-1", "us-west-2", "eu-west-1", "ap-southeast-1")


@dataclass(frozen=True)
class EntityConfig:
    entity_id: str
    name: str
    region: str


def default_entities() -> tuple[EntityConfig, ...]:
    return tuple(
        EntityConfig(
            entity_id=f"server-{index + 1}",
            name=name,
            region=DEFAULT_REGIONS[index % len(DEFAULT_REGIONS)],
        )
        for index, name in enumerate(DEFAULT_ENTITY_NAMES)
    )


@dataclass(frozen=True)
class SchedulerConfig:
    tick_interval_ms: int = 1500


@dataclass(frozen=True)
class HistoryConfig:
    capacity: int = 300
    active_output_cap: int = 300


@dataclass(frozen=True)
class LedgerProbabilities:
    queued_to_running: float = 0.1
    completed_to_queued: float = 0.05
    alert_emission: float = 0.02
    max_progress_step: int = 5


@dataclass(frozen=True)
class LedgerConfig:
    alert_cap: int = 50
    initial_alerts: int = 5
    probabilities: LedgerProbabilities = field(default_factory=LedgerProbabilities)


@dataclass(frozen=True)
class SnapshotConfig:
    lookback_cap_minutes: int = 15


@dataclass(frozen=True)
class FleetConfig:
    entities: Sequence[EntityConfig] = field(default_factory=default_entities)

    def __post_init__(self) -> None:
        object.__setattr__(self, "entities", tuple(self.entities))


@dataclass(frozen=True)
class TelemetryConfig:
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    ledgers: LedgerConfig = field(default_factory=LedgerConfig)
    snapshots: SnapshotConfig = field(default_factory=SnapshotConfig)
    fleet: FleetConfig = field(default_factory=FleetConfig)


def validate_config(config: TelemetryConfig) -> None:
    _require_positive(config.scheduler.tick_interval_ms, "scheduler.tick_interval_ms")
    _require_positive(config.history.capacity, "history.capacity")
    _require_positive(config.history.active_output_cap, "history.active_output_cap")
    _require_positive(config.ledgers.alert_cap, "ledgers.alert_cap")
    if config.ledgers.initial_alerts < 0:
        raise ValueError("ledgers.initial_alerts must be >= 0")
    if config.ledgers.initial_alerts > config.ledgers.alert_cap:
        raise ValueError("ledgers.initial_alerts must be <= ledgers.alert_cap")
    _validate_probabilities(config.ledgers.probabilities)
    _require_positive(config.snapshots.lookback_cap_minutes, "snapshots.lookback_cap_minutes")
    _validate_fleet(config.fleet)


def _validate_probabilities(probabilities: LedgerProbabilities) -> None:
    for name in ("queued_to_running", "completed_to_queued", "alert_emission"):
        value = getattr(probabilities, name)
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"ledgers.probabilities.{name} must be within [0, 1]")
    _require_positive(
        probabilities.max_progress_step, "ledgers.probabilities.max_progress_step"
    )


def _validate_fleet(fleet: FleetConfig) -> None:
    if not fleet.entities:
        raise ValueError("fleet config must include at least one entity")
    entity_ids: set[str] = set()
    for entity in fleet.entities:
        if not entity.entity_id:
            raise ValueError("entity_id must be set for each entity")
        if entity.entity_id in entity_ids:
            raise ValueError(f"duplicate entity_id: {entity.entity_id}")
        entity_ids.add(entity.entity_id)
        if not entity.name:
            raise ValueError(f"name must be set for entity_id={entity.entity_id}")
        if not entity.region:
            raise ValueError(f"region must be set for entity_id={entity.entity_id}")


def _require_positive(value: int | None, field_name: str) -> None:
    if value is None or value <= 0:
        raise ValueError(f"{field_name} must be > 0")
