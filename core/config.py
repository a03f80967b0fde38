"""Configuration management utilities."""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

try:
    from pydantic_settings import BaseSettings, SettingsConfigDict
except ImportError as e:  # pragma: no cover - dependency guard
    raise RuntimeError(
        "Missing dependency 'pydantic-settings'. Install with: pip install 'pydantic-settings>=2.2,<3'"
    ) from e

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from core.clock import GRANULARITIES


class ConfigError(ValueError):
    """Raised when strategy configuration is missing or invalid."""


class EngineSettings(BaseSettings):
    """Engine tunables, overridable through ``SIGEXEC_*`` environment variables."""

    model_config = SettingsConfigDict(env_prefix="SIGEXEC_", extra="ignore")

    candle_limit: int = Field(default=500, ge=1, le=1000)
    min_candles: int = Field(default=200, ge=1)
    refresh_workers: int = Field(default=8, ge=1)
    refresh_timeout_sec: float = Field(default=10.0, gt=0)
    executor_poll_sec: float = Field(default=0.5, gt=0)
    margin_coin: str = Field(default="USDT")


class TakeProfitLeg(BaseModel):
    """One partial close: ``position_pct`` of the fill at ``price_pct`` away from entry."""

    model_config = ConfigDict(frozen=True)

    price_pct: Decimal
    position_pct: Decimal


class MartingaleSettings(BaseModel):
    """Entry size, averaging ladder and exit distances for the martingale evaluator.

    ``max_invest_amount`` is the margin spread across the whole ladder; each
    rung's margin is ``amount_multiple`` times the previous one and its
    distance from entry grows by ``price_multiple``.
    """

    model_config = ConfigDict(frozen=True)

    direction: Literal["long", "short"] = "long"
    add_position_pct: Decimal = Field(default=Decimal("0.5"), gt=0)
    take_profit_pct: Decimal = Field(default=Decimal("2"), gt=0)
    stop_loss_pct: Decimal = Field(default=Decimal("50"), gt=0, lt=100)
    max_invest_amount: Decimal = Field(default=Decimal("100"), gt=0)
    max_open_times: int = Field(default=20, ge=0)
    amount_multiple: Decimal = Field(default=Decimal("1.1"), gt=0)
    price_multiple: Decimal = Field(default=Decimal("1.1"), gt=0)
    min_trade_size: Decimal = Field(default=Decimal("0.0001"), gt=0)


class SymbolConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    symbol: str
    enabled: bool = True
    timeframe: str = "1H"
    leverage: int = Field(default=10, ge=1)
    max_leverage: int = Field(default=100, ge=1)
    price_place: int = Field(default=2, ge=0)
    volume_place: int = Field(default=3, ge=0)
    open_amount: Decimal = Field(default=Decimal("10"))
    deviation_from_ma: Decimal = Field(default=Decimal("10"))
    min_percent_threshold: Decimal = Field(default=Decimal("1.0"))
    take_profit_legs: List[TakeProfitLeg] = Field(default_factory=list)
    margin_mode: Literal["isolated", "crossed"] = "isolated"
    cooldown_sec: Optional[float] = Field(default=None, gt=0)
    martingale: Optional[MartingaleSettings] = None

    @field_validator("timeframe")
    @classmethod
    def _known_timeframe(cls, value: str) -> str:
        if value not in GRANULARITIES:
            raise ValueError(f"unsupported timeframe {value!r}")
        return value

    @field_validator("open_amount")
    @classmethod
    def _positive_amount(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("open_amount must be positive")
        return value

    @model_validator(mode="after")
    def _leverage_within_cap(self) -> "SymbolConfig":
        if self.leverage > self.max_leverage:
            raise ValueError("leverage exceeds max_leverage")
        return self


class StrategyConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    strategy: str
    margin_coin: str = "USDT"
    symbols: Dict[str, SymbolConfig]

    def enabled_symbols(self) -> list[str]:
        return [name for name, cfg in self.symbols.items() if cfg.enabled]

    def get(self, symbol: str) -> SymbolConfig | None:
        return self.symbols.get(symbol)


def parse_strategy_config(data: Dict[str, Any]) -> StrategyConfig:
    """Validate a raw mapping (as read from YAML) into a :class:`StrategyConfig`."""

    if not isinstance(data, dict):
        raise ConfigError("strategy config must be a mapping")
    raw_symbols = data.get("symbols") or {}
    if not isinstance(raw_symbols, dict) or not raw_symbols:
        raise ConfigError("strategy config defines no symbols")
    symbols: Dict[str, Dict[str, Any]] = {}
    for name, body in raw_symbols.items():
        entry = dict(body or {})
        entry.setdefault("symbol", name)
        if entry["symbol"] != name:
            raise ConfigError(f"symbol key {name!r} does not match body symbol {entry['symbol']!r}")
        symbols[name] = entry
    try:
        return StrategyConfig.model_validate(
            {
                "strategy": data.get("strategy", "ma_trend"),
                "margin_coin": data.get("margin_coin", "USDT"),
                "symbols": symbols,
            }
        )
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def load_config(path: str | Path) -> StrategyConfig:
    """Load a YAML strategy configuration file."""

    p = Path(path)
    if not p.exists():
        raise ConfigError(f"config file not found: {p}")
    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    return parse_strategy_config(data)
