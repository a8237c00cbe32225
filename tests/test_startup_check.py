#!/usr/bin/env python3
"""
Startup Check Test Suite - tests/test_startup_check.py

Run with: python -m pytest tests/test_startup_check.py -v
"""

import sys
import unittest
from pathlib import Path

import httpx

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from basis_layer.rate_limiter import RateLimiter
from basis_layer.utils.exchange_client import WeexClient
from config.settings import Settings
from tests.fakes import RecordingLog
from utils.startup_check import check_credentials, perform_startup_checks


def settings(**overrides):
    values = dict(api_key="k", api_secret="s", passphrase="p")
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestStartupChecks(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.account_status = 200
        self.log = RecordingLog()
        self.client = WeexClient(
            api_key="k", api_secret="s", passphrase="p",
            rate_limiter=RateLimiter(), log=self.log,
            base_url="https://api.test",
            transport=httpx.MockTransport(self._handle),
            clock=lambda: 1_700_000_000.0,
        )

    async def asyncTearDown(self):
        await self.client.close()

    def _handle(self, request):
        if request.url.path == "/capi/v2/market/time":
            return httpx.Response(200, json={"timestamp": 1_700_000_001_000})
        if request.url.path == "/capi/v2/account/accounts":
            return httpx.Response(self.account_status, json={})
        return httpx.Response(404)

    def test_missing_credentials(self):
        passed, msg = check_credentials(settings(api_secret="", passphrase=""))
        self.assertFalse(passed)
        self.assertIn("WEEX_API_SECRET", msg)
        self.assertIn("WEEX_API_PASSPHRASE", msg)

    async def test_all_checks_pass(self):
        passed, issues = await perform_startup_checks(self.client, settings(), self.log)

        self.assertTrue(passed)
        self.assertEqual(issues, [])
        self.assertEqual(self.client.drift_ms, 1000)
        self.assertEqual(self.log.find("info", "account_ping")[0]["msg"], "private API reachable")

    async def test_private_failure_is_reported_not_raised(self):
        self.account_status = 401

        passed, issues = await perform_startup_checks(self.client, settings(), self.log)

        self.assertFalse(passed)
        self.assertEqual(len(issues), 1)
        self.assertEqual(len(self.log.find("error", "account_ping")), 1)


if __name__ == "__main__":
    unittest.main(verbosity=2)
