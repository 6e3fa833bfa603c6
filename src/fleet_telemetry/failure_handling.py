from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from fleet_telemetry.observability import Observability


class TickFailure(RuntimeError):
    """Raised by an update action to report a failed tick with a named kind."""

    def __init__(self, error_kind: str, error_detail: str) -> None:
        super().__init__(error_detail)
        self.error_kind = error_kind
        self.error_detail = error_detail


@dataclass
class TickFailureHandler:
    """Runs one tick and contains any exception it raises.

    A failed tick is logged and counted; it never propagates, so the next
    scheduled tick still runs.
    """

    observability: Observability
    consecutive_failures: int = 0
    total_failures: int = 0

    def run(self, action: Callable[[], None], *, tick_ts_ms: int) -> bool:
        try:
            action()
        except TickFailure as exc:
            self._record(tick_ts_ms, exc.error_kind, exc.error_detail)
            return False
        except Exception as exc:
            self._record(tick_ts_ms, type(exc).__name__, str(exc))
            return False
        self.consecutive_failures = 0
        return True

    def _record(self, tick_ts_ms: int, error_kind: str, error_detail: str) -> None:
        self.consecutive_failures += 1
        self.total_failures += 1
        self.observability.log_tick_failure(
            tick_ts_ms=tick_ts_ms,
            error_kind=error_kind,
            error_detail=error_detail,
            consecutive_failures=self.consecutive_failures,
        )
