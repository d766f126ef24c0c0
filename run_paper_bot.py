#!/usr/bin/env python3
"""
Range rebalancer paper trading CLI.

Seeds an in-memory ledger from the settings file, starts the bot on the
configured position and replays a scripted price walk, one monitoring cycle per
step. Prints a summary table at the end.

Usage:
    python3 run_paper_bot.py
    python3 run_paper_bot.py --config configs/paper_rebalancer.yaml
    python3 run_paper_bot.py --walk 300,600,-2400 --min-interval 0
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from tabulate import tabulate

import logging_config
from clmm_rebalancer.config_loader import load_bot_settings, merge_rebalance_config
from clmm_rebalancer.config_schema import BotSettings
from clmm_rebalancer.exceptions import ConfigurationError, RebalancerError
from clmm_rebalancer.interfaces import DeterministicTimeProvider
from clmm_rebalancer.ledger import PaperLedgerClient
from clmm_rebalancer.metrics import RebalanceMetrics
from clmm_rebalancer.rebalance_bot import RebalanceBot
from clmm_rebalancer.types import PositionSnapshot
from clmm_rebalancer.utils import format_duration, timestamp_to_iso
from clmm_rebalancer.version import __version__

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Concentrated-liquidity range rebalancer (paper mode)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config
  python3 run_paper_bot.py

  # Custom price walk, no rebalance cooldown
  python3 run_paper_bot.py --walk 300,600,-2400 --min-interval 0

  # Monitor only
  python3 run_paper_bot.py --no-auto
        """,
    )

    parser.add_argument(
        "--config",
        default="configs/paper_rebalancer.yaml",
        help="Path to config YAML file (default: configs/paper_rebalancer.yaml)",
    )
    parser.add_argument(
        "--walk",
        help="Comma separated tick moves, one per cycle (overrides paper.price_walk)",
    )
    parser.add_argument(
        "--step-seconds",
        type=float,
        help="Simulated seconds between cycles (default: check_interval_seconds)",
    )
    parser.add_argument(
        "--min-interval",
        type=float,
        help="Override rebalance.min_rebalance_interval",
    )
    parser.add_argument(
        "--no-auto",
        action="store_true",
        help="Monitor only, never execute rebalances",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        help="Expose Prometheus metrics on this port while the session runs",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    return parser.parse_args(argv)


def parse_walk(raw: str) -> List[int]:
    try:
        return [int(step) for step in raw.split(",") if step.strip()]
    except ValueError:
        raise ConfigurationError(f"Invalid price walk: {raw}")


async def run_paper_session(
    settings: BotSettings,
    walk: List[int],
    step_seconds: float,
    metrics_port: Optional[int] = None,
) -> RebalanceBot:
    """Start the bot and replay the price walk, one cycle per step."""
    ledger = PaperLedgerClient.from_settings(settings.paper)
    clock = DeterministicTimeProvider()
    metrics = RebalanceMetrics(bot_name=settings.name)
    if metrics_port:
        await metrics.start_server(port=metrics_port)
    bot = RebalanceBot(
        ledger,
        settings.rebalance,
        observer=metrics,
        time_provider=clock,
    )

    await bot.start(settings.position_id, settings.check_interval_seconds)
    try:
        for step, delta in enumerate(walk, start=1):
            clock.advance_time(step_seconds)
            tick = ledger.move_pool_tick(settings.paper.pool_id, delta)
            logger.info(f"Step {step}/{len(walk)}: pool moved {delta:+d} to tick {tick}")
            await bot.tick()
        position = await bot.get_position_info()
    finally:
        bot.stop()
        if metrics_port:
            await metrics.stop_server()

    print_summary(bot, ledger, metrics, step_seconds * len(walk), position)
    return bot


def print_summary(
    bot: RebalanceBot,
    ledger: PaperLedgerClient,
    metrics: RebalanceMetrics,
    elapsed: float,
    position: PositionSnapshot,
) -> None:
    state = bot.get_state()
    config = bot.get_config()
    last = (
        timestamp_to_iso(state.last_rebalance_time)
        if state.last_rebalance_time is not None
        else "never"
    )
    rows = [
        ["Position", state.position_id],
        [
            "Current price",
            f"{position.current_price:.6f} {position.symbol_b}/{position.symbol_a}",
        ],
        ["Current range", f"{position.tick_range} at tick {position.current_tick}"],
        ["Simulated time", format_duration(elapsed)],
        ["Rebalances", state.rebalance_count],
        ["Last rebalance", last],
        ["Total gas", f"{state.total_gas_spent:,}"],
        ["Failed attempts", int(metrics.failed_count())],
        ["Errors logged", len(state.errors)],
        ["Range width", f"{config.range_width_percent}%"],
        ["Slippage tolerance", f"{config.slippage_tolerance}%"],
        [
            "Ledger transactions",
            ledger.metrics["liquidity_removals"] + ledger.metrics["positions_opened"],
        ],
    ]
    print()
    print(tabulate(rows, headers=["Metric", "Value"], tablefmt="grid"))

    if state.errors:
        print("\nRecent errors:")
        for line in list(state.errors)[-5:]:
            print(f"  {line}")


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args(argv)

    if args.debug:
        logging_config.setup_debug()
    else:
        logging_config.setup()

    try:
        settings = load_bot_settings(args.config)
        overrides = {}
        if args.min_interval is not None:
            overrides["min_rebalance_interval"] = args.min_interval
        if args.no_auto:
            overrides["auto_rebalance"] = False
        if overrides:
            settings = settings.model_copy(
                update={"rebalance": merge_rebalance_config(settings.rebalance, overrides)}
            )
        walk = parse_walk(args.walk) if args.walk else settings.paper.price_walk
    except RebalancerError as e:
        print(f"❌ Config error: {e}", file=sys.stderr)
        return 1

    step_seconds = args.step_seconds or settings.check_interval_seconds

    try:
        asyncio.run(
            run_paper_session(settings, walk, step_seconds, args.metrics_port)
        )
    except KeyboardInterrupt:
        print("\n\n⏸ Stopped by user")
        return 0
    except RebalancerError as e:
        print(f"❌ Paper session failed: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
