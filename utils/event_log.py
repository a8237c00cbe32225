"""
Five-channel event log for the trading agent.

Channels:
- info:    routine flow (market queries, sizing, triggers)
- error:   every failure, with symbol and cause
- metrics: startup snapshot and periodic summaries
- pnl:     realized PnL per closed position
- trades:  orders sent to the exchange

Each channel is a structlog logger on top of a stdlib logger named
`basisbot.<channel>`. `configure_logging` gives every channel its own file,
rotated at midnight.

Usage:
    from utils.event_log import configure_logging, EventLog
    configure_logging("../log", level="INFO")
    log = EventLog()
    log.pnl("position_closed", symbol="cmt_btcusdt", net=1.25)
"""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Union

import structlog

CHANNELS = ("info", "error", "metrics", "pnl", "trades")
LOGGER_PREFIX = "basisbot"
CONSOLE_HANDLER = f"{LOGGER_PREFIX}.console"


def configure_logging(
    log_dir: Union[str, Path],
    level: str = "INFO",
    console: bool = True,
    backup_count: int = 0,
) -> None:
    """Wire structlog to stdlib logging and give each channel a daily file."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(
                key_order=["event"], repr_native_str=False
            ),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    if console and not any(h.get_name() == CONSOLE_HANDLER for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        handler.set_name(CONSOLE_HANDLER)
        root.addHandler(handler)

    base = Path(log_dir)
    for channel in CHANNELS:
        channel_dir = base / channel
        channel_dir.mkdir(parents=True, exist_ok=True)
        logger = logging.getLogger(f"{LOGGER_PREFIX}.{channel}")
        logger.setLevel(numeric_level)
        for old in list(logger.handlers):
            logger.removeHandler(old)
            old.close()
        handler = TimedRotatingFileHandler(
            channel_dir / f"{channel}.log",
            when="midnight",
            backupCount=backup_count,
            encoding="utf-8",
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)


class EventLog:
    """Write-only facade over the five channels."""

    def __init__(self, prefix: str = LOGGER_PREFIX):
        self._info = structlog.get_logger(f"{prefix}.info")
        self._error = structlog.get_logger(f"{prefix}.error")
        self._metrics = structlog.get_logger(f"{prefix}.metrics")
        self._pnl = structlog.get_logger(f"{prefix}.pnl")
        self._trades = structlog.get_logger(f"{prefix}.trades")

    def debug(self, event: str, **fields: Any) -> None:
        self._info.debug(event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self._info.info(event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self._error.error(event, **fields)

    def metrics(self, event: str, **fields: Any) -> None:
        self._metrics.info(event, **fields)

    def pnl(self, event: str, **fields: Any) -> None:
        self._pnl.info(event, **fields)

    def trade(self, event: str, **fields: Any) -> None:
        self._trades.info(event, **fields)
