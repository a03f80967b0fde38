"""Clock utilities: candle granularities and monotonic time sources."""
from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Dict


MonotonicFn = Callable[[], float]


def monotonic() -> float:
    return time.monotonic()


@dataclass(frozen=True, slots=True)
class Granularity:
    code: str
    duration: timedelta
    cooldown: timedelta


GRANULARITIES: Dict[str, Granularity] = {
    "1m": Granularity("1m", timedelta(minutes=1), timedelta(hours=4)),
    "5m": Granularity("5m", timedelta(minutes=5), timedelta(hours=4)),
    "15m": Granularity("15m", timedelta(minutes=15), timedelta(hours=1)),
    "30m": Granularity("30m", timedelta(minutes=30), timedelta(hours=2)),
    "1H": Granularity("1H", timedelta(hours=1), timedelta(hours=4)),
    "4H": Granularity("4H", timedelta(hours=4), timedelta(hours=12)),
}

DEFAULT_COOLDOWN = timedelta(hours=4)


def granularity(code: str) -> Granularity:
    try:
        return GRANULARITIES[code]
    except KeyError as exc:
        raise ValueError(f"unsupported granularity: {code}") from exc


def cooldown_for(code: str) -> timedelta:
    """Return the resubmission cooldown for candles of ``code``."""

    entry = GRANULARITIES.get(code)
    return entry.cooldown if entry is not None else DEFAULT_COOLDOWN

