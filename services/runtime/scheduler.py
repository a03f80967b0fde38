"""Fixed-interval tick driver for the engine."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from core.clock import MonotonicFn, monotonic

log = logging.getLogger("sigexec.scheduler")


@dataclass(slots=True)
class _Job:
    name: str
    interval: float
    fn: Callable[[], object]
    next_due: float = 0.0
    runs: int = 0


class TickScheduler:
    """Runs registered jobs on one background thread at their own intervals.

    Jobs run sequentially on the scheduler thread; a job that raises is logged
    and rescheduled like any other.
    """

    def __init__(self, *, clock: MonotonicFn = monotonic, resolution: float = 0.05) -> None:
        self._clock = clock
        self._resolution = resolution
        self._jobs: List[_Job] = []
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def every(self, interval: float, name: str, fn: Callable[[], object]) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._jobs.append(_Job(name=name, interval=interval, fn=fn))

    def run_pending(self) -> int:
        """Run every job that is due; returns how many ran."""

        now = self._clock()
        ran = 0
        for job in self._jobs:
            if now < job.next_due:
                continue
            try:
                job.fn()
            except Exception:  # noqa: BLE001 - keep the schedule alive
                log.exception("scheduler.job_failed", extra={"job": job.name})
            job.runs += 1
            job.next_due = now + job.interval
            ran += 1
        return ran

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="sigexec-scheduler", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def runs(self, name: str) -> int:
        for job in self._jobs:
            if job.name == name:
                return job.runs
        return 0

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.run_pending()
            self._stop.wait(self._resolution)
