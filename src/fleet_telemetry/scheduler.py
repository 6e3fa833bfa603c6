from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from fleet_telemetry.config.schema import SchedulerConfig
from fleet_telemetry.contracts import UpdateStatus
from fleet_telemetry.failure_handling import TickFailureHandler
from fleet_telemetry.lifecycle import Lifecycle, SchedulerState
from fleet_telemetry.observability import Observability, SchedulerHealth, compute_health
from fleet_telemetry.system_state import SystemState

ClockMs = Callable[[], int]
UpdateAction = Callable[[int], None]


@dataclass
class _Timer:
    thread: threading.Thread
    stop_event: threading.Event


class UpdateScheduler:
    """Drives the update action once per interval on a background thread.

    Ticks are skipped while ``state.running`` is false. ``stop()`` cancels
    the timer but keeps ``last_update_ms`` so the stream can resume.
    """

    def __init__(
        self,
        *,
        config: SchedulerConfig,
        state: SystemState,
        action: UpdateAction,
        observability: Observability | None = None,
        clock_ms: ClockMs | None = None,
    ) -> None:
        self._config = config
        self._state = state
        self._action = action
        self._observability = observability or Observability.null()
        self._clock_ms = clock_ms or _now_ms
        self._failures = TickFailureHandler(observability=self._observability)
        self._lifecycle = Lifecycle()
        self._timer: _Timer | None = None
        self._timer_lock = threading.Lock()
        self.last_update_ms: int | None = None

    @property
    def interval_ms(self) -> int:
        return self._config.tick_interval_ms

    @property
    def is_running(self) -> bool:
        return self._lifecycle.running

    @property
    def failures(self) -> TickFailureHandler:
        return self._failures

    def start(self) -> None:
        with self._timer_lock:
            self._cancel_timer()
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._run,
                args=(stop_event,),
                name="fleet-telemetry-scheduler",
                daemon=True,
            )
            self._timer = _Timer(thread=thread, stop_event=stop_event)
            self._lifecycle.start()
            thread.start()
        self._observability.log_scheduler_state(
            state=SchedulerState.RUNNING, interval_ms=self.interval_ms
        )

    def stop(self) -> None:
        with self._timer_lock:
            self._cancel_timer()
            if self._lifecycle.state == SchedulerState.INIT:
                return
            self._lifecycle.stop()
        self._observability.log_scheduler_state(
            state=self._lifecycle.state, interval_ms=self.interval_ms
        )

    def tick(self) -> bool:
        """Run one tick now. Returns True when the update action completed."""
        tick_ts_ms = self._clock_ms()
        if not self._state.running:
            self._observability.log_tick_skipped(tick_ts_ms=tick_ts_ms)
            return False
        if not self._failures.run(lambda: self._action(tick_ts_ms), tick_ts_ms=tick_ts_ms):
            return False
        self.last_update_ms = tick_ts_ms
        return True

    def status(self) -> UpdateStatus:
        return UpdateStatus(
            is_updating=self.is_running,
            last_update_ms=self.last_update_ms,
            update_interval_ms=self.interval_ms,
        )

    def health(self) -> SchedulerHealth:
        return compute_health(
            self._lifecycle,
            consecutive_failures=self._failures.consecutive_failures,
            last_update_ms=self.last_update_ms,
        )

    def _run(self, stop_event: threading.Event) -> None:
        interval_s = self.interval_ms / 1000
        while not stop_event.wait(interval_s):
            self.tick()

    def _cancel_timer(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is None:
            return
        timer.stop_event.set()
        if timer.thread is not threading.current_thread():
            timer.thread.join(timeout=1)


def _now_ms() -> int:
    return int(time.time() * 1000)
