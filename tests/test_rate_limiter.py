#!/usr/bin/env python3
"""
Rate Limiter Test Suite - tests/test_rate_limiter.py

Proves the sliding-window buckets never admit more than their capacity.

Run with: python -m pytest tests/test_rate_limiter.py -v
"""

import asyncio
import random
import sys
import time
import unittest
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from basis_layer.rate_limiter import (
    RateLimitConfig,
    RateLimiter,
    Scope,
    SlidingWindowBucket,
)


class ManualClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestSlidingWindowBucket(unittest.IsolatedAsyncioTestCase):
    """Admission arithmetic with a frozen clock."""

    # =========================================================================
    # CASE 1: Capacity 500 / 10s
    # =========================================================================

    async def test_500_weight_one_calls_admitted_without_blocking(self):
        clock = ManualClock()
        bucket = SlidingWindowBucket("ip", 500, 10.0, clock)

        for _ in range(500):
            await asyncio.wait_for(bucket.acquire(1), timeout=0.5)

        self.assertEqual(bucket.used(), 500)
        self.assertEqual(bucket.total_waits, 0)

    async def test_501st_call_blocks_while_window_is_full(self):
        clock = ManualClock()
        bucket = SlidingWindowBucket("ip", 500, 10.0, clock)
        for _ in range(500):
            await bucket.acquire(1)

        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(bucket.acquire(1), timeout=0.2)
        self.assertEqual(bucket.used(), 500)

    async def test_entries_age_out_after_window(self):
        clock = ManualClock()
        bucket = SlidingWindowBucket("ip", 500, 10.0, clock)
        for _ in range(500):
            await bucket.acquire(1)

        clock.now += 10.0
        self.assertEqual(bucket.used(), 0)
        await asyncio.wait_for(bucket.acquire(1), timeout=0.5)
        self.assertEqual(bucket.used(), 1)

    # =========================================================================
    # CASE 2: Weights
    # =========================================================================

    async def test_zero_and_negative_weight_are_noops(self):
        bucket = SlidingWindowBucket("uid", 5, 10.0, ManualClock())
        await bucket.acquire(0)
        await bucket.acquire(-3)
        self.assertEqual(bucket.used(), 0)

    async def test_weight_exactly_at_capacity_is_admitted(self):
        bucket = SlidingWindowBucket("uid", 5, 10.0, ManualClock())
        await asyncio.wait_for(bucket.acquire(5), timeout=0.5)
        self.assertEqual(bucket.used(), 5)

    async def test_heavy_call_waits_for_room(self):
        bucket = SlidingWindowBucket("uid", 10, 10.0, ManualClock())
        await bucket.acquire(8)

        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(bucket.acquire(5), timeout=0.1)
        await asyncio.wait_for(bucket.acquire(2), timeout=0.5)
        self.assertEqual(bucket.used(), 10)


class TestWaitingOnRealTime(unittest.IsolatedAsyncioTestCase):
    """Short real windows: a blocked caller resumes once the oldest entry expires."""

    async def test_blocked_caller_admitted_after_expiry(self):
        bucket = SlidingWindowBucket("ip", 3, 0.2)
        for _ in range(3):
            await bucket.acquire(1)

        start = time.monotonic()
        await asyncio.wait_for(bucket.acquire(1), timeout=2.0)
        elapsed = time.monotonic() - start

        self.assertGreaterEqual(elapsed, 0.15)
        self.assertEqual(bucket.total_waits, 1)

    async def test_concurrent_random_weights_never_exceed_capacity(self):
        capacity = 20
        window = 0.1
        bucket = SlidingWindowBucket("ip", capacity, window)
        observed = []
        rng = random.Random(7)

        async def worker():
            for _ in range(10):
                await bucket.acquire(rng.randint(1, 6))
                observed.append(bucket.used())

        await asyncio.wait_for(asyncio.gather(*(worker() for _ in range(4))), timeout=10.0)

        self.assertEqual(len(observed), 40)
        self.assertLessEqual(max(observed), capacity)
        self.assertGreater(bucket.total_waits, 0)


class TestRateLimiter(unittest.IsolatedAsyncioTestCase):
    """Scopes are independent buckets."""

    async def test_scopes_are_independent(self):
        rl = RateLimiter(RateLimitConfig(ip_capacity=2, uid_capacity=2, window=10.0), ManualClock())
        await rl.acquire(Scope.UID, 2)

        # A full account bucket must not hold back market data
        await asyncio.wait_for(rl.acquire(Scope.IP, 2), timeout=0.5)
        self.assertEqual(rl.used(Scope.IP), 2)
        self.assertEqual(rl.used(Scope.UID), 2)

        with self.assertRaises(asyncio.TimeoutError):
            await asyncio.wait_for(rl.acquire(Scope.UID, 1), timeout=0.1)

    def test_default_config(self):
        rl = RateLimiter()
        status = rl.get_status()
        self.assertEqual(status["ip"]["capacity"], 500)
        self.assertEqual(status["uid"]["capacity"], 500)
        self.assertEqual(status["ip"]["window"], 10.0)
        self.assertIn("ip=0/500", repr(rl))


if __name__ == "__main__":
    unittest.main(verbosity=2)
