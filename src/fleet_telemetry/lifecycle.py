from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SchedulerState(str, Enum):
    INIT = "init"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class Lifecycle:
    state: SchedulerState = SchedulerState.INIT

    def start(self) -> None:
        self.state = SchedulerState.RUNNING

    def stop(self) -> None:
        if self.state == SchedulerState.INIT:
            return
        self.state = SchedulerState.STOPPED

    @property
    def running(self) -> bool:
        return self.state == SchedulerState.RUNNING
