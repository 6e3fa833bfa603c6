from __future__ import annotations

from dataclasses import dataclass

from fleet_telemetry.contracts import (
    STATUS_ERROR,
    STATUS_HEALTHY,
    STATUS_WARNING,
    EntityStatus,
    MetricSample,
)


@dataclass(frozen=True)
class StatusThresholds:
    error_cpu: float = 85.0
    error_memory: float = 90.0
    error_load_1m: float = 5.0
    warning_cpu: float = 70.0
    warning_memory: float = 80.0
    warning_load_1m: float = 3.0


DEFAULT_THRESHOLDS = StatusThresholds()


def classify(
    sample: MetricSample, thresholds: StatusThresholds = DEFAULT_THRESHOLDS
) -> EntityStatus:
    # Boundaries are exclusive: a value equal to a threshold stays in the lower tier.
    if (
        sample.cpu > thresholds.error_cpu
        or sample.memory > thresholds.error_memory
        or sample.load_1m > thresholds.error_load_1m
    ):
        return STATUS_ERROR
    if (
        sample.cpu > thresholds.warning_cpu
        or sample.memory > thresholds.warning_memory
        or sample.load_1m > thresholds.warning_load_1m
    ):
        return STATUS_WARNING
    return STATUS_HEALTHY


def warning_rule(thresholds: StatusThresholds = DEFAULT_THRESHOLDS) -> str:
    return (
        f"cpu>{thresholds.warning_cpu:g} or memory>{thresholds.warning_memory:g} "
        f"or load_1m>{thresholds.warning_load_1m:g}"
    )
