"""Entry-point for sigexec command-line operations."""

from __future__ import annotations

import argparse
import random
import sys
import time
from decimal import Decimal
from typing import Sequence

import orjson
from dotenv import load_dotenv

from core.config import ConfigError, load_config
from core.logging import setup_logging
from core.runtime_flags import get_runtime_flags
from services.runtime.engine import TradingEngine
from services.runtime.scheduler import TickScheduler
from services.strategy.registry import default_registry
from services.telemetry import metrics
from services.venue.paper import PaperVenue, synthetic_candles


SUPPORTED_VENUES = ("paper",)


def _unsupported_venue(venue: str) -> bool:
    if venue in SUPPORTED_VENUES:
        return False
    print(f"NOT READY: unsupported venue {venue!r} (supported: {', '.join(SUPPORTED_VENUES)})")
    return True


def cmd_check(config_path: str | None = None) -> int:
    load_dotenv(override=False)
    flags = get_runtime_flags()
    if _unsupported_venue(flags.venue):
        return 1
    path = config_path or flags.strategy_config
    try:
        config = load_config(path)
    except ConfigError as exc:
        print(f"NOT READY: {exc}")
        return 1
    strategy = flags.strategy or config.strategy
    if strategy not in default_registry().names():
        print(f"NOT READY: unknown strategy {strategy!r}")
        return 1
    enabled = config.enabled_symbols()
    if not enabled:
        print("NOT READY: no enabled symbols")
        return 1
    print(f"READY strategy={strategy} symbols={','.join(enabled)}")
    return 0


def cmd_strategies() -> int:
    for name in default_registry().names():
        print(name)
    return 0


def _paper_venue(symbols: Sequence[str], timeframes: dict[str, str], seed: int) -> PaperVenue:
    venue = PaperVenue(balance=Decimal("1000"))
    for idx, symbol in enumerate(symbols):
        candles = synthetic_candles(
            Decimal(100 + 25 * idx), 500, timeframes[symbol], seed=seed + idx, drift=0.0005
        )
        venue.set_candles(symbol, candles)
    return venue


def cmd_run(duration: float, seed: int) -> int:
    load_dotenv(override=False)
    flags = get_runtime_flags()
    if _unsupported_venue(flags.venue):
        return 1
    setup_logging()
    try:
        config = load_config(flags.strategy_config)
    except ConfigError as exc:
        print(f"NOT READY: {exc}")
        return 1
    symbols = config.enabled_symbols()
    venue = _paper_venue(symbols, {s: config.symbols[s].timeframe for s in symbols}, seed)
    engine = TradingEngine.from_flags(flags, venue)
    rng = random.Random(seed)

    def price_tick() -> None:
        for symbol in symbols:
            venue.random_walk(symbol, rng)
        engine.on_price_tick()

    scheduler = TickScheduler()
    scheduler.every(flags.price_interval_sec, "price", price_tick)
    scheduler.every(flags.market_interval_sec, "market", engine.on_market_tick)
    scheduler.every(flags.risk_interval_sec, "risk", engine.on_risk_tick)

    engine.start()
    scheduler.start()
    try:
        time.sleep(duration)
    except KeyboardInterrupt:  # pragma: no cover - manual interruption
        return 130
    finally:
        scheduler.stop()
        engine.stop()
    print(orjson.dumps(metrics.snapshot()).decode())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sigexec", description="Signal execution engine CLI")
    sub = parser.add_subparsers(dest="cmd")

    check_parser = sub.add_parser("check", help="Validate the strategy configuration")
    check_parser.add_argument("--config", default=None, help="Path to the strategy YAML file")

    run_parser = sub.add_parser("run", help="Run the engine against the in-memory paper venue")
    run_parser.add_argument("--duration", type=float, default=30.0, help="Seconds to run before stopping")
    run_parser.add_argument("--seed", type=int, default=7, help="Seed for the synthetic market")

    sub.add_parser("strategies", help="List available signal evaluators")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "check":
        return cmd_check(args.config)
    if args.cmd == "run":
        return cmd_run(args.duration, args.seed)
    if args.cmd == "strategies":
        return cmd_strategies()

    parser.print_help()
    return 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
