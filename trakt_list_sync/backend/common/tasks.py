"""Sequential periodic task execution for daemon mode."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

from trakt_list_sync.backend.common.errors import TaskError
from trakt_list_sync.backend.common.logging import get_logger

log = get_logger(__name__)


@dataclass
class TaskSpec:
    fn: Callable[..., Any]
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    name: str = "task"


class PeriodicRunner:
    """Runs one task immediately and then every ``interval`` seconds.

    Passes never overlap: the wait for the next pass starts only once the
    previous one has returned. A failing pass is logged and the schedule
    continues. :meth:`stop` ends the loop at the next wait.
    """

    def __init__(self, interval: float, *, stop_event: Optional[threading.Event] = None):
        if interval <= 0:
            raise TaskError("interval must be greater than 0")
        self.interval = float(interval)
        self._stop = stop_event or threading.Event()
        self.passes = 0

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        self._stop.set()

    def run_forever(self, task: TaskSpec) -> int:
        """Loop until stopped; returns the number of passes that ran."""

        while not self._stop.is_set():
            self.run_once(task)
            if self._stop.wait(self.interval):
                break

        log.info("Periodic runner stopped", extra={"task": task.name, "passes": self.passes})

        return self.passes

    def run_once(self, task: TaskSpec) -> Any:
        self.passes += 1
        log.debug("Task pass starting", extra={"task": task.name, "pass": self.passes})
        try:
            return task.fn(*task.args, **task.kwargs)
        except Exception as exc:  # noqa: BLE001
            log.error("Task pass failed: %s", exc, exc_info=True, extra={"task": task.name, "pass": self.passes})
            return None
