from __future__ import annotations

from dataclasses import dataclass

from fleet_telemetry.contracts import METRIC_TYPES, MetricType


@dataclass
class SystemState:
    """Process-wide run flag and preferred metric.

    Owned by the caller; the engine only reads it, once per tick and on
    metric-series queries.
    """

    running: bool = True
    selected_metric: MetricType = "cpu"

    def set_running(self, running: bool) -> None:
        self.running = running

    def set_selected_metric(self, metric: MetricType) -> None:
        if metric not in METRIC_TYPES:
            raise ValueError(f"unknown metric: {metric}")
        self.selected_metric = metric
