"""
WEEX Basis Bot - Main Entry Point

Polls contract market data, trades mark/index basis deviations and books PnL.

Modes:
- mock / paper: ShadowTrader, fills simulated after WEEX_PAPER_FILL_DELAY
- real / live:  LiveTrader, orders sent to the exchange

All configuration comes from WEEX_* environment variables (or .env).
"""

import argparse
import asyncio
import logging
import signal
import sys

from dotenv import load_dotenv
from pydantic import ValidationError

# Load environment variables
load_dotenv()

from basis_layer.engine import Engine
from basis_layer.executors import LiveTrader, Trader
from basis_layer.rate_limiter import RateLimitConfig, RateLimiter
from basis_layer.shadow_engine import ShadowTrader
from basis_layer.utils.exchange_client import WeexClient
from config.settings import Settings, load_settings
from utils.event_log import EventLog, configure_logging
from utils.startup_check import perform_startup_checks

logger = logging.getLogger(__name__)


def build_trader(settings: Settings, client: WeexClient, log: EventLog) -> Trader:
    if settings.is_live:
        log.info("trader_mode", mode="real")
        return LiveTrader(client, log)
    log.info("trader_mode", mode="mock")
    return ShadowTrader(log, fill_delay=settings.paper_fill_delay)


def install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop.set))


async def run_bot(settings: Settings) -> None:
    """Wire the components together and run until SIGINT/SIGTERM."""
    log = EventLog()
    rate_limiter = RateLimiter(RateLimitConfig(
        ip_capacity=settings.ip_capacity,
        uid_capacity=settings.uid_capacity,
        window=settings.rate_window,
    ))

    async with WeexClient.from_settings(settings, rate_limiter, log) as client:
        passed, issues = await perform_startup_checks(client, settings, log)
        if not passed:
            logger.warning(f"Startup checks reported {len(issues)} issue(s); continuing")

        trader = build_trader(settings, client, log)
        engine = Engine(settings, client, trader, log)

        stop = asyncio.Event()
        install_signal_handlers(stop)
        await engine.run(stop)
        await engine.print_summary()

    logger.info(f"Rate limiter at shutdown: {rate_limiter.get_status()}")


def main():
    parser = argparse.ArgumentParser(
        description="WEEX Basis Bot - mark/index deviation trading"
    )
    parser.add_argument(
        "--mode",
        choices=["mock", "paper", "real", "live"],
        default=None,
        help="Trader backend; overrides WEEX_TRADER_MODE"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()

    overrides = {}
    if args.mode:
        overrides["trader_mode"] = args.mode
    if args.verbose:
        overrides["log_level"] = "DEBUG"

    try:
        settings = load_settings(**overrides)
    except ValidationError as e:
        print(f"Invalid configuration:\n{e}", file=sys.stderr)
        sys.exit(2)

    configure_logging(settings.log_dir, level=settings.log_level)

    asyncio.run(run_bot(settings))


if __name__ == "__main__":
    main()
