"""
Basis Engine

Polls every configured symbol, turns the mark/index basis into a z-score and
trades deviations back toward the index.

Per tick, per symbol (fixed configured order):
1. ticker, index, depth and funding rate through the signed client
2. push dev = (mark - index) / index into the symbol's rolling window
3. decision tree: |z| threshold -> cooldown -> |funding| cap -> spread cap
   -> carry-aligned direction -> z-scaled sizing -> notional cap
4. limit order through the Trader, recorded as an open Position
5. settle positions older than the holding period at the last price

Client failures abort only the current symbol for the current tick.
"""

import asyncio
import time
from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Callable, Dict, List, Optional

from basis_layer.executors import (
    ExecutionError,
    OrderStatus,
    OrderType,
    Side,
    Trader,
)
from basis_layer.symbol_state import Position, StateStore
from basis_layer.utils.endpoints import (
    Contract,
    DepthResp,
    IndexResp,
    Ticker,
    as_float,
)
from basis_layer.utils.exchange_client import ExchangeError, WeexClient
from config.settings import Settings
from utils.event_log import EventLog

# Used when contract metadata is unavailable
DEFAULT_SIZE_INCREMENT = 1.0
DEFAULT_MAKER_FEE = 0.0002
DEFAULT_TAKER_FEE = 0.0006
MAX_Z_MULTIPLE = 3.0

CLOSE_DISCARD = "discard"
CLOSE_RETAIN = "retain"


class SignalSkipped(Exception):
    """The decision tree declined to trade. Not an error."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass
class Signal:
    """A trade the decision tree wants to make."""
    symbol: str
    side: Side
    price: float
    size: float
    dev: float
    z: float


def quantize_size(suggested: float, increment: float, min_size: float = 0.0) -> float:
    """
    Round to the nearest multiple of `increment` (at least one increment),
    then lift to the smallest multiple that meets `min_size`.
    """
    inc = Decimal(str(increment)) if increment > 0 else Decimal(str(DEFAULT_SIZE_INCREMENT))
    units = (Decimal(str(suggested)) / inc).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    units = max(units, Decimal(1))
    size = units * inc
    if min_size > 0:
        floor = Decimal(str(min_size))
        if size < floor:
            units = (floor / inc).to_integral_value(rounding=ROUND_CEILING)
            size = units * inc
    return float(size)


def choose_side(dev: float, funding_rate: float) -> Side:
    """Trade toward the index, never against the funding carry."""
    if dev > 0:
        if funding_rate < 0:
            raise SignalSkipped("funding_against_short")
        return Side.SHORT
    if funding_rate > 0:
        raise SignalSkipped("funding_against_long")
    return Side.LONG


class Engine:
    """
    The trading loop. Owns a StateStore; executes only through a Trader.

    `clock` supplies wall-clock seconds for cooldowns and holding periods so
    tests can move time explicitly.
    """

    def __init__(
        self,
        settings: Settings,
        client: WeexClient,
        trader: Trader,
        log: EventLog,
        store: Optional[StateStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.client = client
        self.trader = trader
        self.log = log
        self.symbols: List[str] = list(settings.symbols)
        self.store = store if store is not None else StateStore(self.symbols, settings.cooldown)
        self._clock = clock
        self._contracts: Dict[str, Contract] = {}

    # =========================================================================
    # RUN LOOP
    # =========================================================================

    async def run(self, stop: asyncio.Event) -> None:
        """
        Tick every `query_interval`, summarize every `metrics_interval`, until
        `stop` is set. Only one timer is served per wakeup and a tick in
        progress is never interrupted.
        """
        await self.log_startup_snapshot()
        if self.settings.flatten_on_start:
            await self.flatten_existing_positions()

        loop = asyncio.get_running_loop()
        tick_every = self.settings.query_interval
        summary_every = self.settings.metrics_interval
        next_tick = loop.time() + tick_every
        next_summary = loop.time() + summary_every

        self.log.info("engine_start", symbols=",".join(self.symbols), mode=self.settings.trader_mode)
        while not stop.is_set():
            timeout = max(0.0, min(next_tick, next_summary) - loop.time())
            try:
                await asyncio.wait_for(stop.wait(), timeout=timeout)
                break
            except asyncio.TimeoutError:
                pass

            now = loop.time()
            if now >= next_tick:
                await self.tick()
                next_tick = _next_deadline(next_tick, tick_every, loop.time())
            elif now >= next_summary:
                await self.print_summary()
                next_summary = _next_deadline(next_summary, summary_every, loop.time())
        self.log.info("engine_stop")

    async def tick(self) -> None:
        for symbol in self.symbols:
            await self.process_symbol(symbol)

    async def process_symbol(self, symbol: str) -> None:
        stage = "query_ticker"
        try:
            ticker = await self.client.get_ticker(symbol)
            self.log.info(
                stage, symbol=symbol, last=ticker.last, bid=ticker.best_bid,
                ask=ticker.best_ask, mark=ticker.mark_price, index=ticker.index_price,
            )
            stage = "query_index"
            idx = await self.client.get_index(symbol)
            self.log.info(stage, symbol=symbol, index=idx.index)
            stage = "query_depth"
            depth = await self.client.get_depth(symbol, self.settings.depth_limit)
            self.log.info(stage, symbol=symbol, asks=len(depth.asks), bids=len(depth.bids))
            stage = "query_fund_rate"
            rates = await self.client.get_current_fund_rate(symbol)
        except ExchangeError as e:
            self.log.error(stage, symbol=symbol, err=str(e))
            return

        funding_rate = ""
        if rates:
            funding_rate = rates[0].funding_rate
            self.log.info("query_fund_rate", symbol=symbol, funding_rate=funding_rate)

        await self.evaluate_and_trade(symbol, ticker, idx, depth, funding_rate)
        await self.evaluate_pnl(symbol, ticker)

    # =========================================================================
    # DECISION TREE
    # =========================================================================

    async def evaluate(
        self,
        symbol: str,
        ticker: Ticker,
        idx: IndexResp,
        depth: DepthResp,
        funding_rate: str,
    ) -> Signal:
        """Observe one snapshot and return the trade to make, or raise SignalSkipped."""
        mark = as_float(ticker.mark_price)
        index = as_float(idx.index)
        last = as_float(ticker.last)
        if mark == 0 or index == 0 or last == 0:
            raise SignalSkipped("missing_price")

        state = self.store.state(symbol)
        dev = (mark - index) / index
        z = state.observe(dev)
        if abs(z) < self.settings.z_threshold:
            raise SignalSkipped("below_threshold")

        if state.in_cooldown(self._clock()):
            raise SignalSkipped("cooldown")

        fr = as_float(funding_rate)
        if abs(fr) > self.settings.funding_abs_max:
            raise SignalSkipped("funding_too_high")

        ask = depth.best_ask()
        bid = depth.best_bid()
        if (ask - bid) / index > self.settings.spread_max_ratio:
            raise SignalSkipped("spread_too_wide")

        side = choose_side(dev, fr)

        suggested = self.settings.base_unit * min(MAX_Z_MULTIPLE, abs(z))
        size = await self.adjust_order_size(symbol, suggested)

        price = last
        if side is Side.SHORT and ask > 0:
            price = ask
        elif side is Side.LONG and bid > 0:
            price = bid

        notional = price * size
        if notional > self.settings.max_notional_usd:
            self.log.info(
                "skip_max_notional", symbol=symbol, side=side.value,
                size=f"{size:.6f}", price=f"{price:.6f}", notional=f"{notional:.2f}",
            )
            raise SignalSkipped("max_notional")

        return Signal(symbol=symbol, side=side, price=price, size=size, dev=dev, z=z)

    async def evaluate_and_trade(
        self,
        symbol: str,
        ticker: Ticker,
        idx: IndexResp,
        depth: DepthResp,
        funding_rate: str,
    ) -> Optional[Position]:
        """Run the decision tree and, on a signal, place a limit order."""
        try:
            signal = await self.evaluate(symbol, ticker, idx, depth, funding_rate)
        except SignalSkipped as e:
            self.log.debug("signal_skipped", symbol=symbol, reason=e.reason)
            return None

        try:
            order = await self.trader.place_order(
                symbol, signal.side, OrderType.LIMIT, signal.price, signal.size
            )
            if order.status is OrderStatus.ERROR:
                raise ExecutionError(symbol, "open", "order rejected")
        except ExecutionError as e:
            self.log.error("place_order", symbol=symbol, side=signal.side.value, err=str(e))
            return None

        now = self._clock()
        self.store.state(symbol).mark_triggered(now)
        position = Position(
            order_id=order.id,
            side=signal.side,
            entry_price=signal.price,
            entry_time=now,
            order_type=OrderType.LIMIT,
            size=signal.size,
        )
        self.store.add_position(symbol, position)
        self.log.info(
            "strategy_trigger", symbol=symbol, action=signal.side.value,
            dev=f"{signal.dev:.6f}", z=f"{signal.z:.3f}", size=f"{signal.size:.6f}",
            price=f"{signal.price:.6f}", order_id=order.id, type=OrderType.LIMIT.value,
        )
        return position

    # =========================================================================
    # SIZING AND CONTRACT METADATA
    # =========================================================================

    async def contract(self, symbol: str) -> Optional[Contract]:
        """Cached contract metadata; failed lookups are retried next time."""
        cached = self._contracts.get(symbol)
        if cached is not None:
            return cached
        try:
            contracts = await self.client.get_contracts(symbol)
        except ExchangeError as e:
            self.log.error("query_contracts", symbol=symbol, err=str(e))
            return None
        if not contracts:
            return None
        self._contracts[symbol] = contracts[0]
        return contracts[0]

    async def adjust_order_size(self, symbol: str, suggested: float) -> float:
        contract = await self.contract(symbol)
        increment = as_float(contract.size_increment) if contract else 0.0
        if increment <= 0:
            increment = DEFAULT_SIZE_INCREMENT
        min_size = self.settings.min_size(symbol)
        size = quantize_size(suggested, increment, min_size)
        self.log.info(
            "size_adjust", symbol=symbol, suggested=f"{suggested:.6f}",
            increment=f"{increment:.6f}", min_size=f"{min_size:.6f}", size=f"{size:.6f}",
        )
        return size

    async def fee_rate(self, symbol: str, order_type: OrderType) -> float:
        """Maker rate for limit orders, taker rate for market orders."""
        contract = await self.contract(symbol)
        if order_type is OrderType.MARKET:
            rate = as_float(contract.taker_fee_rate) if contract else 0.0
            return rate if rate > 0 else DEFAULT_TAKER_FEE
        rate = as_float(contract.maker_fee_rate) if contract else 0.0
        return rate if rate > 0 else DEFAULT_MAKER_FEE

    # =========================================================================
    # SETTLEMENT
    # =========================================================================

    async def evaluate_pnl(self, symbol: str, ticker: Ticker) -> None:
        """Close every position whose holding period has elapsed and book net PnL."""
        positions = self.store.positions(symbol)
        if not positions:
            return
        now = self._clock()
        hold = self.settings.hold_duration
        exit_price = as_float(ticker.last)
        if exit_price <= 0:
            if any(p.age(now) >= hold for p in positions):
                self.log.info("settle_deferred", symbol=symbol, reason="no_last_price")
            return

        kept: List[Position] = []
        for p in list(positions):
            if p.age(now) < hold:
                kept.append(p)
                continue

            gross = p.gross_pnl(exit_price)
            rate = await self.fee_rate(symbol, p.order_type)
            fee = rate * p.entry_price * p.size
            net = gross - fee

            try:
                order = await self.trader.close_position(
                    symbol, p.side, OrderType.MARKET, 0.0, p.size
                )
                if order.status is OrderStatus.ERROR:
                    raise ExecutionError(symbol, "close", "order rejected")
            except ExecutionError as e:
                self.log.error(
                    "close_position", symbol=symbol, order_id=p.order_id,
                    side=p.side.value, err=str(e), policy=self.settings.close_failure_policy,
                )
                if self.settings.close_failure_policy == CLOSE_RETAIN:
                    kept.append(p)
                    continue

            self.store.book_close(symbol, net)
            self.log.pnl(
                "position_closed", symbol=symbol, side=p.side.value,
                entry=f"{p.entry_price:.6f}", exit=f"{exit_price:.6f}",
                gross=f"{gross:.6f}", fee=f"{fee:.6f}", net=f"{net:.6f}",
                type=p.order_type.value,
            )
        positions[:] = kept

    # =========================================================================
    # ACCOUNT VIEWS
    # =========================================================================

    async def log_startup_snapshot(self) -> None:
        try:
            available, equity = await self.client.get_collateral_usdt()
        except ExchangeError as e:
            self.log.error("metrics_start", err=str(e))
        else:
            if available > 0 or equity > 0:
                self.log.metrics(
                    "metrics_start", equity_usdt=f"{equity:.6f}", available_usdt=f"{available:.6f}"
                )
            else:
                self.log.metrics("metrics_start", equity_usdt="unknown", available_usdt="unknown")

        try:
            positions = await self.client.get_positions()
        except ExchangeError as e:
            self.log.error("metrics_start_position", err=str(e))
            return
        for p in positions:
            self.log.metrics(
                "metrics_start_position", symbol=p.symbol, side=p.side,
                size=f"{p.size:.6f}", leverage=f"{p.leverage:.2f}",
            )

    async def flatten_existing_positions(self) -> None:
        """Market-close every position the exchange reports."""
        try:
            positions = await self.client.get_positions()
        except ExchangeError as e:
            self.log.error("flatten_on_start", err=str(e))
            return
        for p in positions:
            side = Side.LONG if p.side.upper() == "LONG" else Side.SHORT
            try:
                await self.trader.close_position(p.symbol, side, OrderType.MARKET, 0.0, p.size)
            except ExecutionError as e:
                self.log.error("flatten_on_start", symbol=p.symbol, side=side.value, err=str(e))
                continue
            self.log.trade("flatten_on_start", symbol=p.symbol, side=side.value, size=f"{p.size:.6f}")

    async def print_summary(self) -> None:
        self.log.metrics(
            "summary",
            open_positions=self.store.open_count(),
            realized_pnl=f"{self.store.total_realized():.6f}",
        )
        for symbol in self.symbols:
            book = self.store.book(symbol)
            self.log.metrics(
                "summary_symbol", symbol=symbol,
                realized_pnl=f"{book.realized_pnl:.6f}", closed=book.closed_count,
            )

        try:
            positions = await self.client.get_positions()
        except ExchangeError as e:
            self.log.error("summary_positions", err=str(e))
            positions = []

        if positions:
            for p in positions:
                self.log.metrics(
                    "position_detail", symbol=p.symbol, side=p.side,
                    size=f"{p.size:.6f}", leverage=f"{p.leverage:.2f}",
                )
            return

        for symbol in self.symbols:
            long_size, short_size = self.store.exposure(symbol)
            if long_size > 0:
                self.log.metrics(
                    "position_detail", symbol=symbol, side=Side.LONG.value,
                    size=f"{long_size:.6f}", leverage="n/a",
                )
            if short_size > 0:
                self.log.metrics(
                    "position_detail", symbol=symbol, side=Side.SHORT.value,
                    size=f"{short_size:.6f}", leverage="n/a",
                )


def _next_deadline(deadline: float, interval: float, now: float) -> float:
    # Missed periods are dropped, not replayed
    if interval <= 0:
        return now
    deadline += interval
    while deadline <= now:
        deadline += interval
    return deadline
