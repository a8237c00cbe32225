#!/usr/bin/env python3
"""
Event Log Test Suite - tests/test_event_log.py

Each channel writes to its own day-rotated file.

Run with: python -m pytest tests/test_event_log.py -v
"""

import logging
import sys
import tempfile
import unittest
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from utils.event_log import (
    CHANNELS,
    CONSOLE_HANDLER,
    LOGGER_PREFIX,
    EventLog,
    configure_logging,
)


class TestEventLog(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        configure_logging(self.tmp.name, level="INFO", console=False)
        self.log = EventLog()

    def tearDown(self):
        for channel in CHANNELS:
            logger = logging.getLogger(f"{LOGGER_PREFIX}.{channel}")
            for handler in list(logger.handlers):
                logger.removeHandler(handler)
                handler.close()
        self.tmp.cleanup()

    def read(self, channel: str) -> str:
        for handler in logging.getLogger(f"{LOGGER_PREFIX}.{channel}").handlers:
            handler.flush()
        return (Path(self.tmp.name) / channel / f"{channel}.log").read_text(encoding="utf-8")

    def test_every_channel_has_a_midnight_file(self):
        for channel in CHANNELS:
            handlers = logging.getLogger(f"{LOGGER_PREFIX}.{channel}").handlers
            self.assertEqual(len(handlers), 1)
            self.assertIsInstance(handlers[0], TimedRotatingFileHandler)
            self.assertEqual(handlers[0].when, "MIDNIGHT")
            self.assertTrue((Path(self.tmp.name) / channel).is_dir())

    def test_events_land_on_their_channel(self):
        self.log.pnl("position_closed", symbol="cmt_btcusdt", net="19.960000")
        self.log.error("query_index", symbol="cmt_btcusdt", err="timeout")

        pnl = self.read("pnl")
        self.assertIn("event=position_closed", pnl)
        self.assertIn("symbol=cmt_btcusdt", pnl)
        self.assertIn("net=19.960000", pnl)
        self.assertIn("event=query_index", self.read("error"))
        self.assertNotIn("position_closed", self.read("error"))
        self.assertEqual(self.read("trades"), "")

    def test_debug_filtered_at_info_level(self):
        self.log.debug("signal_skipped", reason="cooldown")
        self.log.info("query_ticker", symbol="cmt_btcusdt")

        info = self.read("info")
        self.assertNotIn("signal_skipped", info)
        self.assertIn("query_ticker", info)

    def test_reconfigure_does_not_duplicate_handlers(self):
        configure_logging(self.tmp.name, level="INFO", console=False)
        handlers = logging.getLogger(f"{LOGGER_PREFIX}.metrics").handlers
        self.assertEqual(len(handlers), 1)

    def test_console_handler_installed_once(self):
        root = logging.getLogger()
        try:
            configure_logging(self.tmp.name, level="INFO", console=True)
            configure_logging(self.tmp.name, level="INFO", console=True)
            named = [h for h in root.handlers if h.get_name() == CONSOLE_HANDLER]
            self.assertEqual(len(named), 1)
            self.assertIsInstance(named[0], logging.StreamHandler)
        finally:
            for handler in [h for h in root.handlers if h.get_name() == CONSOLE_HANDLER]:
                root.removeHandler(handler)


if __name__ == "__main__":
    unittest.main(verbosity=2)
