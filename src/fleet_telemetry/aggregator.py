from __future__ import annotations

from collections.abc import Sequence

from fleet_telemetry.classifier import (
    DEFAULT_THRESHOLDS,
    StatusThresholds,
    classify,
    warning_rule,
)
from fleet_telemetry.contracts import (
    STATUS_ERROR,
    STATUS_HEALTHY,
    STATUS_WARNING,
    Entity,
    HealthStatus,
    LoadBalanceStatus,
    MetricSample,
)
from fleet_telemetry.sampler import MetricSampler

SKEW_RATIO_THRESHOLD = 3.0


def aggregate(
    entities: Sequence[Entity], *, sampler: MetricSampler, timestamp_ms: int
) -> MetricSample:
    if not entities:
        return sampler.sample(timestamp_ms=timestamp_ms)
    samples = [entity.latest_sample for entity in entities]
    return mean_sample(samples, timestamp_ms=timestamp_ms)


def mean_sample(samples: Sequence[MetricSample], *, timestamp_ms: int) -> MetricSample:
    if not samples:
        raise ValueError("mean_sample requires at least one sample")
    count = len(samples)
    return MetricSample(
        cpu=sum(sample.cpu for sample in samples) / count,
        memory=sum(sample.memory for sample in samples) / count,
        disk=sum(sample.disk for sample in samples) / count,
        network_in=sum(sample.network_in for sample in samples) / count,
        network_out=sum(sample.network_out for sample in samples) / count,
        load_1m=sum(sample.load_1m for sample in samples) / count,
        timestamp_ms=timestamp_ms,
    )


def load_balance(
    entities: Sequence[Entity], *, skew_ratio: float = SKEW_RATIO_THRESHOLD
) -> LoadBalanceStatus:
    if not entities:
        return LoadBalanceStatus(status="balanced", message="Load distribution normal")
    busiest = max(entities, key=lambda entity: entity.latest_sample.network_total)
    quietest = min(entities, key=lambda entity: entity.latest_sample.network_total)
    max_total = busiest.latest_sample.network_total
    min_total = quietest.latest_sample.network_total
    if min_total == 0:
        return LoadBalanceStatus(status="balanced", message="Load distribution normal")

    ratio = max_total / min_total
    if ratio > skew_ratio:
        return LoadBalanceStatus(
            status="skewed",
            message=(
                f"Load imbalance detected between {busiest.name} and {quietest.name} "
                f"(ratio: {ratio:.2f}x)"
            ),
        )
    return LoadBalanceStatus(
        status="balanced", message=f"Load distribution balanced (ratio: {ratio:.2f}x)"
    )


def health_status(
    entities: Sequence[Entity], thresholds: StatusThresholds = DEFAULT_THRESHOLDS
) -> HealthStatus:
    tiers = [(entity, classify(entity.latest_sample, thresholds)) for entity in entities]
    failing = [entity for entity, tier in tiers if tier == STATUS_ERROR]
    if failing:
        details = "; ".join(_describe(entity) for entity in failing)
        return HealthStatus(
            overall=STATUS_ERROR,
            message=f"{len(failing)} server(s) in critical state: {details}",
        )
    warned = [entity for entity, tier in tiers if tier == STATUS_WARNING]
    if warned:
        return HealthStatus(
            overall=STATUS_WARNING,
            message=(
                f"{len(warned)} server(s) need attention ({warning_rule(thresholds)})"
            ),
        )
    return HealthStatus(
        overall=STATUS_HEALTHY,
        message=f"All systems operational ({len(entities)} servers)",
    )


def _describe(entity: Entity) -> str:
    sample = entity.latest_sample
    return (
        f"{entity.id} cpu={sample.cpu:.1f} memory={sample.memory:.1f} "
        f"load_1m={sample.load_1m:.2f}"
    )
