from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from fleet_telemetry.contracts import MetricSample, TimeRange


class OutOfOrderSampleError(ValueError):
    """Raised when a sample is older than the newest one already buffered."""


@dataclass
class HistoryStore:
    """Bounded per-entity sample history.

    Every buffer holds at most ``capacity`` samples; appending to a full
    buffer evicts exactly the oldest one. ``version`` increases on every
    mutation so derived views can key caches on it.
    """

    capacity: int
    version: int
    _buffers: dict[str, deque[MetricSample]]

    def __init__(self, *, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.capacity = capacity
        self.version = 0
        self._buffers = {}

    def append(self, entity_id: str, sample: MetricSample) -> None:
        buffer = self._buffers.get(entity_id)
        if buffer is None:
            buffer = deque(maxlen=self.capacity)
            self._buffers[entity_id] = buffer
        if buffer and sample.timestamp_ms < buffer[-1].timestamp_ms:
            raise OutOfOrderSampleError(
                f"sample timestamp {sample.timestamp_ms} precedes "
                f"{buffer[-1].timestamp_ms} for entity_id={entity_id}"
            )
        buffer.append(sample)
        self.version += 1

    def get(self, entity_id: str, time_range: TimeRange | None = None) -> list[MetricSample]:
        buffer = self._buffers.get(entity_id)
        if buffer is None:
            return []
        if time_range is None:
            return list(buffer)
        return [sample for sample in buffer if time_range.contains(sample.timestamp_ms)]

    def latest(self, entity_id: str) -> MetricSample | None:
        buffer = self._buffers.get(entity_id)
        if not buffer:
            return None
        return buffer[-1]

    def entity_ids(self) -> tuple[str, ...]:
        return tuple(self._buffers)

    def seed(self, entity_id: str, samples: Iterable[MetricSample]) -> None:
        self._buffers[entity_id] = self._build_buffer(entity_id, samples)
        self.version += 1

    def load(self, buffers: Mapping[str, Sequence[MetricSample]]) -> None:
        """Replace every buffer at once.

        The new buffers are fully built before the swap, so a reader sees
        either the old set or the new set, never a mix.
        """
        rebuilt = {
            entity_id: self._build_buffer(entity_id, samples)
            for entity_id, samples in buffers.items()
        }
        self._buffers = rebuilt
        self.version += 1

    def clear(self) -> None:
        self._buffers = {}
        self.version += 1

    def __len__(self) -> int:
        return sum(len(buffer) for buffer in self._buffers.values())

    def _build_buffer(
        self, entity_id: str, samples: Iterable[MetricSample]
    ) -> deque[MetricSample]:
        buffer: deque[MetricSample] = deque(maxlen=self.capacity)
        for sample in samples:
            if buffer and sample.timestamp_ms < buffer[-1].timestamp_ms:
                raise OutOfOrderSampleError(
                    f"seed samples must be chronological for entity_id={entity_id}"
                )
            buffer.append(sample)
        return buffer
