"""
Execution Backends

The engine only sees the `Trader` capability:
- place_order(symbol, side, order_type, price, size) -> Order
- close_position(symbol, side, order_type, price, size) -> Order

Two backends satisfy it:
- ShadowTrader (shadow_engine.py): paper trading, fills simulated after a delay
- LiveTrader (here): maps calls 1:1 onto the exchange's order placement
"""

import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from basis_layer.utils.exchange_client import ExchangeError, WeexClient
from basis_layer.utils.endpoints import PlaceOrderRequest
from utils.event_log import EventLog


# === Common Types ===

class Side(Enum):
    LONG = "long"
    SHORT = "short"

    def opposite(self) -> "Side":
        return Side.SHORT if self is Side.LONG else Side.LONG


class OrderType(Enum):
    LIMIT = "limit"
    MARKET = "market"


class OrderStatus(Enum):
    NEW = "new"
    FILLED = "filled"
    ERROR = "error"


@dataclass
class Order:
    """An order as acknowledged by an execution backend."""
    id: str
    symbol: str
    side: Side
    order_type: OrderType
    price: float
    size: float
    status: OrderStatus = OrderStatus.NEW
    created_at: float = field(default_factory=time.time)


class ExecutionError(Exception):
    """Raised when a backend fails to place or close an order."""

    def __init__(self, symbol: str, action: str, cause: object):
        super().__init__(f"{action} {symbol}: {cause}")
        self.symbol = symbol
        self.action = action
        self.cause = cause


def new_client_oid() -> str:
    return f"{datetime.now():%Y%m%dT%H%M%S}-{random.getrandbits(63)}"


# === Base Trader ===

class Trader(ABC):
    """Capability interface the engine executes through."""

    @abstractmethod
    async def place_order(
        self,
        symbol: str,
        side: Side,
        order_type: OrderType,
        price: float,
        size: float,
    ) -> Order:
        """Open exposure in `side`."""

    @abstractmethod
    async def close_position(
        self,
        symbol: str,
        side: Side,
        order_type: OrderType,
        price: float,
        size: float,
    ) -> Order:
        """Close exposure held in `side`; executed in the opposite direction."""


# =============================================================================
# Live Trader
# =============================================================================

class LiveTrader(Trader):
    """
    Sends orders straight to the exchange.

    Exchange order types: 1 open long, 2 open short, 3 close long, 4 close short.
    Limit orders carry a price; market orders set match_price=1 instead.
    Positions are assumed filled at the requested price; fills and partial
    fills are not reported back.
    """

    OPEN_TYPES = {Side.LONG: "1", Side.SHORT: "2"}
    CLOSE_TYPES = {Side.LONG: "3", Side.SHORT: "4"}

    def __init__(self, client: WeexClient, log: EventLog):
        self.client = client
        self.log = log

    def _build_request(
        self,
        symbol: str,
        exchange_type: str,
        order_type: OrderType,
        price: float,
        size: float,
    ) -> PlaceOrderRequest:
        req = PlaceOrderRequest(
            symbol=symbol,
            client_oid=new_client_oid(),
            size=f"{size:.8f}",
            type=exchange_type,
            order_type="0",
            match_price="0",
        )
        if order_type is OrderType.MARKET:
            req.match_price = "1"
        else:
            req.price = f"{price:.8f}"
        return req

    async def _submit(
        self,
        action: str,
        symbol: str,
        side: Side,
        exchange_type: str,
        order_type: OrderType,
        price: float,
        size: float,
    ) -> Order:
        req = self._build_request(symbol, exchange_type, order_type, price, size)
        try:
            resp = await self.client.place_order(req)
        except ExchangeError as e:
            self.log.error(f"live_{action}_error", symbol=symbol, err=str(e))
            raise ExecutionError(symbol, action, e) from e

        self.log.trade(
            f"live_{action}_order",
            symbol=symbol,
            order_id=resp.order_id,
            client_oid=req.client_oid,
            side=side.value,
            type=order_type.value,
            size=req.size,
        )
        return Order(
            id=resp.order_id,
            symbol=symbol,
            side=side,
            order_type=order_type,
            price=price,
            size=size,
        )

    async def place_order(self, symbol, side, order_type, price, size) -> Order:
        return await self._submit(
            "open", symbol, side, self.OPEN_TYPES[side], order_type, price, size
        )

    async def close_position(self, symbol, side, order_type, price, size) -> Order:
        # The close type already encodes the direction; the order itself trades the opposite side
        return await self._submit(
            "close", symbol, side.opposite(), self.CLOSE_TYPES[side], order_type, price, size
        )
