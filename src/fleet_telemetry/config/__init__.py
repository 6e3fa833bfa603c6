from fleet_telemetry.config.loader import load_config, load_default_config
from fleet_telemetry.config.schema import (
    EntityConfig,
    FleetConfig,
    HistoryConfig,
    LedgerConfig,
    LedgerProbabilities,
    SchedulerConfig,
    SnapshotConfig,
    TelemetryConfig,
    default_entities,
    validate_config,
)

__all__ = [
    "EntityConfig",
    "FleetConfig",
    "HistoryConfig",
    "LedgerConfig",
    "LedgerProbabilities",
    "SchedulerConfig",
    "SnapshotConfig",
    "TelemetryConfig",
    "default_entities",
    "load_config",
    "load_default_config",
    "validate_config",
]
