from __future__ import annotations

import os
import threading
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field


_FLAGS_CACHE: "RuntimeFlags | None" = None
_FLAGS_SIGNATURE: tuple[tuple[str, str | None], ...] | None = None
_CACHE_LOCK = threading.Lock()

_FALSEY = {"0", "false", "no", "off", "f", "n", ""}
_TRUEY = {"1", "true", "yes", "on", "t", "y"}


def parse_bool(value: object | None, default: bool = False) -> bool:
    """Coerce user-provided strings and booleans into a boolean."""

    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip()
    if not text:
        return False
    lowered = text.lower()
    if lowered in _TRUEY:
        return True
    if lowered in _FALSEY:
        return False
    return default


def _coerce_int(value: object | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def _coerce_float(value: object | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(str(value).strip())
    except (TypeError, ValueError):
        return default


class RuntimeFlags(BaseModel):
    model_config = ConfigDict(frozen=True)

    venue: str = Field(default="paper")
    dry_run: bool = Field(default=False)
    strategy: str = Field(default="")
    strategy_config: str = Field(default="config/strategies.yaml")
    queue_capacity: int = Field(default=1000)
    price_interval_sec: float = Field(default=0.5)
    market_interval_sec: float = Field(default=2.0)
    risk_interval_sec: float = Field(default=1.5)
    alerts_enabled: bool = Field(default=True)

    @property
    def trading_mode(self) -> Literal["dry_run", "paper"]:
        return "dry_run" if self.dry_run else "paper"


_SIGNATURE_KEYS = (
    "VENUE",
    "DRY_RUN",
    "STRATEGY",
    "STRATEGY_CONFIG",
    "QUEUE_CAPACITY",
    "PRICE_INTERVAL_SEC",
    "MARKET_INTERVAL_SEC",
    "RISK_INTERVAL_SEC",
    "ALERTS_ENABLED",
)


def _env_signature() -> tuple[tuple[str, str | None], ...]:
    return tuple((name, os.getenv(name)) for name in _SIGNATURE_KEYS)


def _build_runtime_flags() -> RuntimeFlags:
    """Internal helper to hydrate :class:`RuntimeFlags` from the environment."""

    load_dotenv(override=False)

    venue = (os.getenv("VENUE", "paper").strip() or "paper").lower()
    strategy = os.getenv("STRATEGY", "").strip()
    config_path = os.getenv("STRATEGY_CONFIG", "config/strategies.yaml").strip() or "config/strategies.yaml"

    capacity = _coerce_int(os.getenv("QUEUE_CAPACITY"), 1000)
    if capacity <= 0:
        capacity = 1000

    return RuntimeFlags(
        venue=venue,
        dry_run=parse_bool(os.getenv("DRY_RUN"), default=False),
        strategy=strategy,
        strategy_config=config_path,
        queue_capacity=capacity,
        price_interval_sec=_coerce_float(os.getenv("PRICE_INTERVAL_SEC"), 0.5),
        market_interval_sec=_coerce_float(os.getenv("MARKET_INTERVAL_SEC"), 2.0),
        risk_interval_sec=_coerce_float(os.getenv("RISK_INTERVAL_SEC"), 1.5),
        alerts_enabled=parse_bool(os.getenv("ALERTS_ENABLED"), default=True),
    )


def runtime_flags_from_env() -> RuntimeFlags:
    """Build :class:`RuntimeFlags` from environment variables without caching."""

    return _build_runtime_flags()


def get_runtime_flags() -> RuntimeFlags:
    global _FLAGS_CACHE, _FLAGS_SIGNATURE
    signature = _env_signature()
    with _CACHE_LOCK:
        if _FLAGS_CACHE is None or signature != _FLAGS_SIGNATURE:
            _FLAGS_CACHE = _build_runtime_flags()
            _FLAGS_SIGNATURE = signature
        return _FLAGS_CACHE


def refresh_runtime_flags() -> RuntimeFlags:
    global _FLAGS_CACHE, _FLAGS_SIGNATURE
    with _CACHE_LOCK:
        _FLAGS_CACHE = _build_runtime_flags()
        _FLAGS_SIGNATURE = _env_signature()
        return _FLAGS_CACHE
