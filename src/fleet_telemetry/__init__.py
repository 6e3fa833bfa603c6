"""fleet telemetry history, view-mode engine and query surface."""

from fleet_telemetry.aggregator import aggregate, health_status, load_balance, mean_sample
from fleet_telemetry.classifier import DEFAULT_THRESHOLDS, StatusThresholds, classify
from fleet_telemetry.config import (
    EntityConfig,
    FleetConfig,
    HistoryConfig,
    LedgerConfig,
    LedgerProbabilities,
    SchedulerConfig,
    SnapshotConfig,
    TelemetryConfig,
    load_config,
    load_default_config,
    validate_config,
)
from fleet_telemetry.contracts import (
    Alert,
    Entity,
    HealthStatus,
    HistoricalSnapshot,
    InvalidTimeRangeError,
    LoadBalanceStatus,
    MetricSample,
    Task,
    TimeRange,
    UpdateStatus,
)
from fleet_telemetry.failure_handling import TickFailure, TickFailureHandler
from fleet_telemetry.history import HistoryStore, OutOfOrderSampleError
from fleet_telemetry.ledgers import AlertLedger, TaskLedger
from fleet_telemetry.lifecycle import Lifecycle, SchedulerState
from fleet_telemetry.observability import (
    NullLogger,
    NullMetrics,
    Observability,
    SchedulerHealth,
    StdlibLogger,
    compute_health,
)
from fleet_telemetry.sampler import MetricSampler, RandomSource
from fleet_telemetry.scheduler import UpdateScheduler
from fleet_telemetry.service import TelemetryService
from fleet_telemetry.snapshots import SnapshotBuild, SnapshotBuilder
from fleet_telemetry.system_state import SystemState
from fleet_telemetry.view_state import (
    MissingLookbackError,
    PlaybackUnavailableError,
    ViewState,
    ViewStateMachine,
)
