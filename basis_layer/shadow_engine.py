"""
Shadow Engine - Paper Trading for the basis bot

Orders never reach the exchange. Each order is acknowledged as `new` and
becomes `filled` once the simulated fill delay has elapsed. Pending fills sit
in an explicit queue; `settle_fills(now)` applies every fill that is due.
Inside a running event loop the trader also schedules `settle_fills` with
`loop.call_later`, so no extra driver is needed in production while tests
can advance time themselves.

Usage:
    python main.py --mode paper
"""

import asyncio
import heapq
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional, Tuple

from basis_layer.executors import (
    Order,
    OrderStatus,
    OrderType,
    Side,
    Trader,
    new_client_oid,
)
from utils.event_log import EventLog


@dataclass
class ShadowStats:
    """Aggregate statistics for a paper trading session."""
    total_orders: int = 0
    total_closes: int = 0
    total_fills: int = 0


class ShadowTrader(Trader):
    """Paper trading backend with deferred, deterministic fills."""

    def __init__(
        self,
        log: EventLog,
        fill_delay: float = 2.0,
        clock: Callable[[], float] = time.time,
        schedule: bool = True,
    ):
        self.log = log
        self.fill_delay = fill_delay
        self._clock = clock
        self._schedule = schedule
        self._lock = threading.Lock()
        self._orders: Dict[str, Order] = {}
        self._pending: List[Tuple[float, str]] = []
        self.stats = ShadowStats()

        self.log.info("shadow_trader_ready", fill_delay=fill_delay)

    def _record(self, symbol: str, side: Side, order_type: OrderType, price: float, size: float) -> Order:
        now = self._clock()
        due = now + self.fill_delay
        order = Order(
            id=new_client_oid(),
            symbol=symbol,
            side=side,
            order_type=order_type,
            price=price,
            size=size,
            status=OrderStatus.NEW,
            created_at=now,
        )
        with self._lock:
            self._orders[order.id] = order
            heapq.heappush(self._pending, (due, order.id))
        self._schedule_settle(due)
        return replace(order)

    def _schedule_settle(self, due: float) -> None:
        if not self._schedule:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        # Loop time and the injected clock may differ; settle as of `due`
        loop.call_later(self.fill_delay, self.settle_fills, due)

    def settle_fills(self, now: Optional[float] = None) -> List[Order]:
        """Mark every order whose fill time has come as filled."""
        now = self._clock() if now is None else now
        filled = []
        with self._lock:
            while self._pending and self._pending[0][0] <= now:
                _, order_id = heapq.heappop(self._pending)
                order = self._orders[order_id]
                order.status = OrderStatus.FILLED
                filled.append(replace(order))
            self.stats.total_fills += len(filled)
        for order in filled:
            self.log.info(
                "shadow_order_fill",
                id=order.id,
                symbol=order.symbol,
                side=order.side.value,
                type=order.order_type.value,
            )
        return filled

    async def place_order(self, symbol, side, order_type, price, size) -> Order:
        order = self._record(symbol, side, order_type, price, size)
        with self._lock:
            self.stats.total_orders += 1
        self.log.trade(
            "shadow_order_create",
            id=order.id,
            symbol=symbol,
            side=side.value,
            type=order_type.value,
            price=price,
            size=size,
        )
        return order

    async def close_position(self, symbol, side, order_type, price, size) -> Order:
        order = self._record(symbol, side.opposite(), order_type, price, size)
        with self._lock:
            self.stats.total_closes += 1
        self.log.trade(
            "shadow_position_close",
            id=order.id,
            symbol=symbol,
            position_side=side.value,
            side=order.side.value,
            type=order_type.value,
            size=size,
        )
        return order

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            return replace(order) if order is not None else None

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)
