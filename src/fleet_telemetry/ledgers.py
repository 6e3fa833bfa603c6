from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace

from fleet_telemetry.config.schema import LedgerProbabilities
from fleet_telemetry.contracts import (
    ALERT_SEVERITIES,
    TASK_STATUSES,
    Alert,
    Task,
    TaskStatus,
)
from fleet_telemetry.sampler import RandomSource

TASK_NAMES: Sequence[str] = (
    "Database Backup",
    "Log Rotation",
    "Cache Cleanup",
    "Security Scan",
    "Performance Analysis",
    "Data Migration",
    "System Update",
    "Health Check",
)
CLUSTER_COUNT = 3

ALERT_MESSAGES: Sequence[str] = (
    "High CPU usage detected",
    "Memory usage above threshold",
    "Disk space running low",
    "Network latency increased",
    "Service response time degraded",
    "Database connection pool exhausted",
    "Cache miss rate high",
    "Load balancer health check failed",
)

MAX_INITIAL_TASK_AGE_MS = 3_600_000
MAX_INITIAL_ALERT_AGE_MS = 1_800_000
UNKNOWN_SOURCE = "unknown"


@dataclass
class TaskLedger:
    rng: RandomSource
    probabilities: LedgerProbabilities
    _tasks: list[Task]

    def __init__(
        self,
        *,
        rng: RandomSource,
        probabilities: LedgerProbabilities,
        tasks: Sequence[Task] = (),
    ) -> None:
        self.rng = rng
        self.probabilities = probabilities
        self._tasks = list(tasks)

    @classmethod
    def generate(
        cls, *, rng: RandomSource, probabilities: LedgerProbabilities, now_ms: int
    ) -> TaskLedger:
        tasks: list[Task] = []
        for index, name in enumerate(TASK_NAMES):
            status = rng.choice(TASK_STATUSES)
            progress = 100 if status == "completed" else int(rng.random() * 100)
            tasks.append(
                Task(
                    id=f"task-{index + 1}",
                    name=name,
                    cluster=f"cluster-{(index % CLUSTER_COUNT) + 1}",
                    status=status,  # type: ignore[arg-type]
                    progress=progress,
                    start_time_ms=now_ms - int(rng.random() * MAX_INITIAL_TASK_AGE_MS),
                )
            )
        return cls(rng=rng, probabilities=probabilities, tasks=tasks)

    def tasks(self) -> tuple[Task, ...]:
        return tuple(self._tasks)

    def get(self, task_id: str) -> Task | None:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def filter(self, text: str | None) -> list[Task]:
        if not text:
            return list(self._tasks)
        needle = text.lower()
        return [
            task
            for task in self._tasks
            if needle in task.name.lower()
            or needle in task.cluster.lower()
            or needle in task.status.lower()
        ]

    def advance(self, *, now_ms: int) -> None:
        self._tasks = [self._advance_task(task, now_ms) for task in self._tasks]

    def set_status(self, task_id: str, status: TaskStatus, *, now_ms: int) -> Task | None:
        if status not in TASK_STATUSES:
            raise ValueError(f"unknown task status: {status}")
        task = self.get(task_id)
        if task is None:
            return None
        progress = task.progress
        if status == "completed":
            progress = 100
        elif progress >= 100:
            progress = 0
        start_time_ms = task.start_time_ms
        if status == "queued" and task.status != "queued":
            start_time_ms = now_ms
        updated = replace(task, status=status, progress=progress, start_time_ms=start_time_ms)
        self._replace(updated)
        return updated

    def complete(self, task_id: str, *, now_ms: int) -> Task | None:
        return self.set_status(task_id, "completed", now_ms=now_ms)

    def _advance_task(self, task: Task, now_ms: int) -> Task:
        probabilities = self.probabilities
        if task.status == "running":
            step = int(self.rng.random() * probabilities.max_progress_step)
            progress = min(100, task.progress + step)
            status: TaskStatus = "completed" if progress == 100 else "running"
            return replace(task, progress=progress, status=status)
        if task.status == "queued":
            if self.rng.random() < probabilities.queued_to_running:
                return replace(task, status="running")
            return task
        if task.status == "completed":
            if self.rng.random() < probabilities.completed_to_queued:
                return replace(task, status="queued", progress=0, start_time_ms=now_ms)
            return task
        return task

    def _replace(self, updated: Task) -> None:
        self._tasks = [updated if task.id == updated.id else task for task in self._tasks]


@dataclass
class AlertLedger:
    """Newest-first alert list capped at ``cap`` entries."""

    rng: RandomSource
    probabilities: LedgerProbabilities
    cap: int
    _alerts: list[Alert]
    _next_seq: int

    def __init__(
        self,
        *,
        rng: RandomSource,
        probabilities: LedgerProbabilities,
        cap: int,
        alerts: Sequence[Alert] = (),
    ) -> None:
        if cap <= 0:
            raise ValueError("cap must be > 0")
        self.rng = rng
        self.probabilities = probabilities
        self.cap = cap
        self._alerts = sorted(alerts, key=lambda alert: alert.timestamp_ms, reverse=True)[:cap]
        self._next_seq = len(self._alerts) + 1

    @classmethod
    def generate(
        cls,
        *,
        rng: RandomSource,
        probabilities: LedgerProbabilities,
        cap: int,
        sources: Sequence[str],
        count: int,
        now_ms: int,
    ) -> AlertLedger:
        alerts = [
            Alert(
                id=f"alert-{index + 1}",
                timestamp_ms=now_ms - int(rng.random() * MAX_INITIAL_ALERT_AGE_MS),
                source=rng.choice(sources) if sources else UNKNOWN_SOURCE,
                severity=rng.choice(ALERT_SEVERITIES),  # type: ignore[arg-type]
                message=message,
            )
            for index, message in enumerate(ALERT_MESSAGES[:count])
        ]
        return cls(rng=rng, probabilities=probabilities, cap=cap, alerts=alerts)

    def alerts(self) -> list[Alert]:
        return sorted(self._alerts, key=lambda alert: alert.timestamp_ms, reverse=True)

    def get(self, alert_id: str) -> Alert | None:
        for alert in self._alerts:
            if alert.id == alert_id:
                return alert
        return None

    def maybe_emit(self, *, sources: Sequence[str], now_ms: int) -> Alert | None:
        if self.rng.random() >= self.probabilities.alert_emission:
            return None
        alert = Alert(
            id=f"alert-{self._next_seq}",
            timestamp_ms=now_ms,
            source=self.rng.choice(sources) if sources else UNKNOWN_SOURCE,
            severity=self.rng.choice(ALERT_SEVERITIES),  # type: ignore[arg-type]
            message=self.rng.choice(ALERT_MESSAGES),
        )
        self.push(alert)
        return alert

    def push(self, alert: Alert) -> None:
        self._next_seq += 1
        self._alerts.insert(0, alert)
        if len(self._alerts) > self.cap:
            del self._alerts[self.cap :]

    def acknowledge(self, alert_id: str) -> Alert | None:
        alert = self.get(alert_id)
        if alert is None:
            return None
        updated = replace(alert, acknowledged=True)
        self._alerts = [updated if item.id == alert_id else item for item in self._alerts]
        return updated

    def remove(self, alert_id: str) -> bool:
        remaining = [alert for alert in self._alerts if alert.id != alert_id]
        removed = len(remaining) != len(self._alerts)
        self._alerts = remaining
        return removed

    def __len__(self) -> int:
        return len(self._alerts)
