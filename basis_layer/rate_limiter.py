"""
Dual-Bucket Sliding-Window Rate Limiter for the WEEX contract API

Every endpoint declares a credential scope and a weight:
- Scope IP  (source-address quota): market data, server time, contract metadata
- Scope UID (account quota): account snapshots, order placement

Each scope owns an independent bucket so heavy account polling can never
starve market-data traffic. A bucket admits a call only if the weights
admitted within the trailing window, plus the new weight, stay within capacity.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class Scope(Enum):
    """Credential scope an endpoint is metered against."""
    IP = "ip"      # Per source address
    UID = "uid"    # Per account


@dataclass
class RateLimitConfig:
    """Capacities per scope, sharing a single window."""
    ip_capacity: int = 500
    uid_capacity: int = 500
    window: float = 10.0   # Seconds


class SlidingWindowBucket:
    """A single sliding-window bucket of (timestamp, weight) admissions."""

    # Never park for less than this, so a waiter wakes after expiry, not before
    MIN_WAIT: float = 0.001

    def __init__(
        self,
        name: str,
        capacity: int,
        window: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.capacity = capacity
        self.window = window
        self._clock = clock
        self._entries: Deque[Tuple[float, int]] = deque()
        self._used = 0
        self._cond = asyncio.Condition()

        # Stats
        self.total_admitted = 0
        self.total_waits = 0

        logger.debug(
            f"SlidingWindowBucket '{name}' initialized: "
            f"capacity={capacity}, window={window}s"
        )

    def _prune(self, now: float) -> None:
        """Drop entries that have aged out of the trailing window."""
        cutoff = now - self.window
        while self._entries and self._entries[0][0] <= cutoff:
            _, weight = self._entries.popleft()
            self._used -= weight

    def used(self) -> int:
        """Weight admitted within the trailing window."""
        self._prune(self._clock())
        return self._used

    def _next_expiry(self, now: float) -> float:
        """Seconds until the oldest entry leaves the window."""
        if not self._entries:
            return self.window
        return max(self._entries[0][0] + self.window - now, self.MIN_WAIT)

    async def acquire(self, weight: int) -> None:
        """
        Wait until `weight` more units fit in the window, then record them.

        The waiter parks on the bucket's condition until the oldest entry
        expires instead of polling on a fixed interval.
        """
        if weight <= 0:
            return
        if weight > self.capacity:
            logger.warning(
                f"Bucket '{self.name}': weight {weight} exceeds capacity "
                f"{self.capacity}, request can never be admitted"
            )

        async with self._cond:
            waited = False
            while True:
                now = self._clock()
                self._prune(now)
                if self._used + weight <= self.capacity:
                    self._entries.append((now, weight))
                    self._used += weight
                    self.total_admitted += weight
                    return
                if not waited:
                    waited = True
                    self.total_waits += 1
                    logger.debug(
                        f"Bucket '{self.name}' full ({self._used}/{self.capacity}), "
                        f"waiting for weight {weight}"
                    )
                try:
                    await asyncio.wait_for(
                        self._cond.wait(), timeout=self._next_expiry(now)
                    )
                except asyncio.TimeoutError:
                    pass

    def get_stats(self) -> dict:
        return {
            "name": self.name,
            "used": self.used(),
            "capacity": self.capacity,
            "window": self.window,
            "total_admitted": self.total_admitted,
            "total_waits": self.total_waits,
        }


class RateLimiter:
    """
    Dual-bucket admission control, one bucket per credential scope.

    `acquire` never fails: sustained over-quota traffic only adds latency.
    There is no backoff, queueing or cancellation beyond what the caller's
    own task does.
    """

    def __init__(
        self,
        config: Optional[RateLimitConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        config = config or RateLimitConfig()
        self.config = config
        self._buckets: Dict[Scope, SlidingWindowBucket] = {
            Scope.IP: SlidingWindowBucket("ip", config.ip_capacity, config.window, clock),
            Scope.UID: SlidingWindowBucket("uid", config.uid_capacity, config.window, clock),
        }

        logger.info(
            f"RateLimiter initialized: ip={config.ip_capacity}, "
            f"uid={config.uid_capacity} per {config.window:g}s"
        )

    async def acquire(self, scope: Scope, weight: int = 1) -> None:
        """Block the calling task until `weight` is admitted into `scope`."""
        await self._buckets[scope].acquire(weight)

    def used(self, scope: Scope) -> int:
        return self._buckets[scope].used()

    def bucket(self, scope: Scope) -> SlidingWindowBucket:
        return self._buckets[scope]

    def get_status(self) -> dict:
        return {scope.value: bucket.get_stats() for scope, bucket in self._buckets.items()}

    def __repr__(self) -> str:
        ip = self._buckets[Scope.IP]
        uid = self._buckets[Scope.UID]
        return (
            f"RateLimiter("
            f"ip={ip.used()}/{ip.capacity}, "
            f"uid={uid.used()}/{uid.capacity}, "
            f"window={self.config.window:g}s)"
        )
