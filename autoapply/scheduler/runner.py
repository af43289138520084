"""In-process interval scheduler.

One runner thread evaluates every registered task once per check interval;
ticks never overlap, and due tasks run one after another inside a tick.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from autoapply.errors import TaskNotFoundError
from autoapply.log import get_logger

log = get_logger(__name__)


@dataclass
class ScheduledTask:
    name: str
    interval: float
    handler: Callable[[], Any]
    last_run: float = 0.0
    enabled: bool = True

    def is_due(self, now: float) -> bool:
        return self.enabled and now - self.last_run >= self.interval


class TaskRunner:
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self.clock = clock
        self._tasks: dict[str, ScheduledTask] = {}
        self._tick_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def register(self, name: str, interval: float, handler: Callable[[], Any]) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._tasks[name] = ScheduledTask(name=name, interval=interval, handler=handler)
        log.info("Task registered: %s every %.0fs", name, interval)

    def _get(self, name: str) -> ScheduledTask:
        try:
            return self._tasks[name]
        except KeyError:
            raise TaskNotFoundError(f"Task {name} not found") from None

    def tick(self, now: float | None = None) -> list[str]:
        """Run every due task once; returns the names that ran."""
        with self._tick_lock:
            now = self.clock() if now is None else now
            ran: list[str] = []
            for task in list(self._tasks.values()):
                if not task.is_due(now):
                    continue
                # Stamped before the handler so a slow or failing run still waits a full interval
                task.last_run = now
                ran.append(task.name)
                log.info("Running scheduled task %s", task.name)
                try:
                    task.handler()
                    log.info("Task %s completed", task.name)
                except Exception:
                    log.exception("Task %s failed", task.name)
            return ran

    def _loop(self, check_interval: float) -> None:
        while not self._stop.wait(check_interval):
            self.tick()

    def start(self, check_interval: float = 60.0) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop, args=(check_interval,), name="task-runner", daemon=True,
        )
        self._thread.start()
        log.info("Task runner started (check every %.0fs)", check_interval)

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        log.info("Task runner stopped")

    def wait(self) -> None:
        """Block until ``stop`` is called from another thread or a signal handler."""
        while self.running:
            self._stop.wait(1.0)

    def enable(self, name: str) -> None:
        self._get(name).enabled = True
        log.info("Task %s enabled", name)

    def disable(self, name: str) -> None:
        self._get(name).enabled = False
        log.info("Task %s disabled", name)

    def run_now(self, name: str) -> None:
        task = self._get(name)
        log.info("Manually running task %s", name)
        task.last_run = self.clock()
        task.handler()
        log.info("Manual run of %s completed", name)

    def get_status(self) -> list[dict[str, Any]]:
        return [
            {
                "name": t.name,
                "enabled": t.enabled,
                "last_run": (
                    datetime.fromtimestamp(t.last_run, tz=timezone.utc).isoformat() if t.last_run else "never"
                ),
                "interval": f"{t.interval / 60:g} minutes",
            }
            for t in self._tasks.values()
        ]
