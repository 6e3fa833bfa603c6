from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol, TypeVar

from fleet_telemetry.contracts import MetricSample

T = TypeVar("T")

CPU_BASELINE_MIN = 20.0
CPU_BASELINE_MAX = 90.0
CPU_NOISE = 5.0
BASELINE_WEIGHT = 0.35
MEMORY_CPU_FACTOR = 0.8
MEMORY_OFFSET_MIN = 5.0
MEMORY_OFFSET_MAX = 25.0
DISK_INITIAL_MIN = 30.0
DISK_INITIAL_MAX = 70.0
DISK_DRIFT = 0.5
LOAD_NOISE = 1.0
NETWORK_IN_PER_CPU = 10.0
NETWORK_OUT_PER_CPU = 8.0
NETWORK_IN_NOISE = 500.0
NETWORK_OUT_NOISE = 400.0


class RandomSource(Protocol):
    """The subset of ``random.Random`` the generators rely on."""

    def random(self) -> float: ...

    def uniform(self, a: float, b: float) -> float: ...

    def choice(self, seq: Sequence[T]) -> T: ...


@dataclass
class MetricSampler:
    """Produces synthetic metric samples.

    Each call draws a cpu baseline in [20, 90]; with a previous sample the new
    cpu is pulled towards that baseline instead of jumping to it, so
    consecutive samples stay correlated. Memory, load and network follow cpu.
    Every draw goes through ``rng``.
    """

    rng: RandomSource

    def sample(
        self, previous: MetricSample | None = None, *, timestamp_ms: int
    ) -> MetricSample:
        baseline = self.rng.uniform(CPU_BASELINE_MIN, CPU_BASELINE_MAX)
        if previous is None:
            cpu = baseline
            disk = self.rng.uniform(DISK_INITIAL_MIN, DISK_INITIAL_MAX)
        else:
            cpu = previous.cpu * (1.0 - BASELINE_WEIGHT) + baseline * BASELINE_WEIGHT
            disk = previous.disk + self.rng.uniform(-DISK_DRIFT, DISK_DRIFT)
        cpu = clamp_percent(cpu + self.rng.uniform(-CPU_NOISE, CPU_NOISE))
        memory = clamp_percent(
            cpu * MEMORY_CPU_FACTOR + self.rng.uniform(MEMORY_OFFSET_MIN, MEMORY_OFFSET_MAX)
        )
        load_1m = max(0.0, cpu / 10.0 + self.rng.uniform(-LOAD_NOISE, LOAD_NOISE))
        network_in = max(
            0.0, cpu * NETWORK_IN_PER_CPU + self.rng.uniform(0.0, NETWORK_IN_NOISE)
        )
        network_out = max(
            0.0, cpu * NETWORK_OUT_PER_CPU + self.rng.uniform(0.0, NETWORK_OUT_NOISE)
        )
        return MetricSample(
            cpu=cpu,
            memory=memory,
            disk=clamp_percent(disk),
            network_in=network_in,
            network_out=network_out,
            load_1m=load_1m,
            timestamp_ms=timestamp_ms,
        )


def clamp_percent(value: float) -> float:
    return min(100.0, max(0.0, value))
