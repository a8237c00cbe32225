#!/usr/bin/env python3
"""
Configuration Test Suite - tests/test_settings.py

WEEX_* environment parsing: defaults, durations, symbol lists and min sizes.

Run with: python -m pytest tests/test_settings.py -v
"""

import os
import sys
import unittest
from pathlib import Path
from unittest import mock

from pydantic import ValidationError

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import (
    DEFAULT_SYMBOLS,
    Settings,
    load_settings,
    parse_duration,
    parse_size_map,
)


def env_only(**env):
    """Patch os.environ to exactly `env`, and ignore any .env file."""
    return mock.patch.dict(os.environ, env, clear=True)


class TestParsers(unittest.TestCase):

    def test_durations(self):
        self.assertEqual(parse_duration("1s"), 1.0)
        self.assertEqual(parse_duration("250ms"), 0.25)
        self.assertEqual(parse_duration("3m"), 180.0)
        self.assertEqual(parse_duration("1h"), 3600.0)
        self.assertEqual(parse_duration("1m30s"), 90.0)
        self.assertEqual(parse_duration("2.5"), 2.5)
        self.assertEqual(parse_duration(10), 10.0)

    def test_bad_duration(self):
        for bad in ("", "abc", "1d", "1m junk"):
            with self.assertRaises(ValueError):
                parse_duration(bad)

    def test_size_map(self):
        self.assertEqual(
            parse_size_map("cmt_btcusdt:0.001, cmt_ethusdt:0.01"),
            {"cmt_btcusdt": 0.001, "cmt_ethusdt": 0.01},
        )

    def test_size_map_skips_malformed_and_non_positive(self):
        self.assertEqual(
            parse_size_map("cmt_btcusdt:abc,broken,cmt_ethusdt:0,cmt_solusdt:-1,cmt_xrpusdt:5"),
            {"cmt_xrpusdt": 5.0},
        )
        self.assertEqual(parse_size_map(""), {})


class TestSettings(unittest.TestCase):

    def test_defaults(self):
        with env_only():
            s = Settings(_env_file=None)

        self.assertEqual(s.base_url, "https://api-contract.weex.com")
        self.assertEqual(s.symbols, DEFAULT_SYMBOLS)
        self.assertEqual(s.query_interval, 1.0)
        self.assertEqual(s.metrics_interval, 10.0)
        self.assertEqual(s.cooldown, 60.0)
        self.assertEqual(s.hold_duration, 180.0)
        self.assertEqual(s.z_threshold, 1.2)
        self.assertEqual(s.funding_abs_max, 0.01)
        self.assertEqual(s.spread_max_ratio, 0.005)
        self.assertEqual(s.max_notional_usd, 300.0)
        self.assertEqual(s.base_unit, 0.001)
        self.assertEqual(s.log_dir, "../log")
        self.assertEqual(s.trader_mode, "mock")
        self.assertEqual(s.close_failure_policy, "discard")
        self.assertFalse(s.flatten_on_start)
        self.assertFalse(s.is_live)

    def test_environment(self):
        with env_only(
            WEEX_SYMBOLS="cmt_btcusdt, cmt_ethusdt",
            WEEX_COOLDOWN="90s",
            WEEX_HOLD_DURATION="5m",
            WEEX_QUERY_INTERVAL="500ms",
            WEEX_MIN_SIZE_MAP="cmt_btcusdt:0.002",
            WEEX_TRADER_MODE="real",
            WEEX_FLATTEN_ON_START="true",
            WEEX_Z_THRESHOLD="2.0",
        ):
            s = Settings(_env_file=None)

        self.assertEqual(s.symbols, ["cmt_btcusdt", "cmt_ethusdt"])
        self.assertEqual(s.cooldown, 90.0)
        self.assertEqual(s.hold_duration, 300.0)
        self.assertEqual(s.query_interval, 0.5)
        self.assertEqual(s.min_size("cmt_btcusdt"), 0.002)
        self.assertEqual(s.min_size("cmt_ethusdt"), 0.0)
        self.assertTrue(s.is_live)
        self.assertTrue(s.flatten_on_start)
        self.assertEqual(s.z_threshold, 2.0)

    def test_overrides_win(self):
        with env_only(WEEX_TRADER_MODE="real"):
            s = load_settings(trader_mode="paper", _env_file=None)
        self.assertFalse(s.is_live)

    def test_invalid_policy_rejected(self):
        with env_only(WEEX_CLOSE_FAILURE_POLICY="ignore"):
            with self.assertRaises(ValidationError):
                Settings(_env_file=None)

    def test_non_positive_intervals_rejected(self):
        for name in ("WEEX_COOLDOWN", "WEEX_HOLD_DURATION",
                     "WEEX_QUERY_INTERVAL", "WEEX_METRICS_INTERVAL"):
            for value in ("0", "0s", "-5s"):
                with self.subTest(name=name, value=value):
                    with env_only(**{name: value}):
                        with self.assertRaises(ValidationError):
                            Settings(_env_file=None)

    def test_unknown_trader_mode_rejected(self):
        with env_only(WEEX_TRADER_MODE="reall"):
            with self.assertRaises(ValidationError):
                Settings(_env_file=None)

    def test_invalid_duration_rejected(self):
        with env_only(WEEX_COOLDOWN="soon"):
            with self.assertRaises(ValidationError):
                Settings(_env_file=None)


if __name__ == "__main__":
    unittest.main(verbosity=2)
