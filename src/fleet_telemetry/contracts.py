from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

EntityStatus = Literal["healthy", "warning", "error"]
STATUS_HEALTHY = "healthy"
STATUS_WARNING = "warning"
STATUS_ERROR = "error"

TaskStatus = Literal["queued", "running", "failed", "completed"]
TASK_STATUSES: Sequence[str] = ("queued", "running", "failed", "completed")

AlertSeverity = Literal["low", "medium", "high", "critical"]
ALERT_SEVERITIES: Sequence[str] = ("low", "medium", "high", "critical")

ViewMode = Literal["live", "historical"]
VIEW_MODE_LIVE = "live"
VIEW_MODE_HISTORICAL = "historical"

MetricType = Literal["cpu", "memory", "disk"]
METRIC_TYPES: Sequence[str] = ("cpu", "memory", "disk")

LoadBalance = Literal["balanced", "skewed"]

METRIC_FIELDS: Sequence[str] = (
    "cpu",
    "memory",
    "disk",
    "network_in",
    "network_out",
    "load_1m",
)


class InvalidTimeRangeError(ValueError):
    """Raised when a time range starts after it ends."""


@dataclass(frozen=True)
class MetricSample:
    cpu: float
    memory: float
    disk: float
    network_in: float
    network_out: float
    load_1m: float
    timestamp_ms: int

    @property
    def network_total(self) -> float:
        return self.network_in + self.network_out


@dataclass(frozen=True)
class TimeRange:
    start_ms: int
    end_ms: int

    def __post_init__(self) -> None:
        if self.start_ms > self.end_ms:
            raise InvalidTimeRangeError("time range start must be <= end")

    def contains(self, timestamp_ms: int) -> bool:
        return self.start_ms <= timestamp_ms <= self.end_ms


@dataclass(frozen=True)
class Entity:
    """A monitored node.

    The entity refers to its history buffer by ``id`` only; buffers are
    owned by the history store.
    """

    id: str
    name: str
    region: str
    latest_sample: MetricSample
    status: EntityStatus


@dataclass(frozen=True)
class Task:
    id: str
    name: str
    cluster: str
    status: TaskStatus
    progress: int
    start_time_ms: int


@dataclass(frozen=True)
class Alert:
    id: str
    timestamp_ms: int
    source: str
    severity: AlertSeverity
    message: str
    acknowledged: bool = False


@dataclass(frozen=True)
class HealthStatus:
    overall: EntityStatus
    message: str


@dataclass(frozen=True)
class LoadBalanceStatus:
    status: LoadBalance
    message: str


@dataclass(frozen=True)
class UpdateStatus:
    is_updating: bool
    last_update_ms: int | None
    update_interval_ms: int


@dataclass(frozen=True)
class HistoricalSnapshot:
    entities: Sequence[Entity]
    aggregated_series: Sequence[MetricSample]
    time_range: TimeRange
    lookback_minutes: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "entities", tuple(self.entities))
        object.__setattr__(self, "aggregated_series", tuple(self.aggregated_series))
