from __future__ import annotations

import pytest

from services.runtime.scheduler import TickScheduler
from tests.fakes.clock import FakeClock


def test_jobs_run_at_their_own_interval() -> None:
    clock = FakeClock()
    scheduler = TickScheduler(clock=clock)
    scheduler.every(1.0, "fast", lambda: None)
    scheduler.every(5.0, "slow", lambda: None)

    for _ in range(10):
        scheduler.run_pending()
        clock.advance(1.0)

    assert scheduler.runs("fast") == 10
    assert scheduler.runs("slow") == 2


def test_failing_job_is_rescheduled() -> None:
    clock = FakeClock()
    scheduler = TickScheduler(clock=clock)

    def boom() -> None:
        raise RuntimeError("tick failed")

    scheduler.every(1.0, "boom", boom)
    scheduler.run_pending()
    clock.advance(1.0)
    scheduler.run_pending()
    assert scheduler.runs("boom") == 2


def test_interval_must_be_positive() -> None:
    with pytest.raises(ValueError):
        TickScheduler().every(0, "never", lambda: None)
