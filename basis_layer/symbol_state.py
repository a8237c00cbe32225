"""
Per-symbol rolling statistics and the engine's state store.

The basis deviation of each observation is kept in a fixed-size ring buffer;
mean and population standard deviation are recomputed over the held samples
on every call.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from basis_layer.executors import OrderType, Side

BASIS_WINDOW = 120


class RollingSeries:
    """Fixed-capacity ring buffer; the oldest sample is overwritten first."""

    def __init__(self, capacity: int = BASIS_WINDOW):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._buf = [0.0] * capacity
        self._next = 0
        self._count = 0

    @property
    def capacity(self) -> int:
        return len(self._buf)

    def __len__(self) -> int:
        return self._count

    def push(self, value: float) -> None:
        self._buf[self._next] = value
        self._next = (self._next + 1) % len(self._buf)
        if self._count < len(self._buf):
            self._count += 1

    def values(self) -> List[float]:
        """Held samples, oldest first."""
        if self._count < len(self._buf):
            return self._buf[:self._count]
        return self._buf[self._next:] + self._buf[:self._next]

    def mean_std(self) -> Tuple[float, float]:
        """Mean and population standard deviation; (0, 0) when empty."""
        if self._count == 0:
            return 0.0, 0.0
        held = self._buf[:self._count]
        mean = sum(held) / self._count
        var = sum((v - mean) ** 2 for v in held) / self._count
        return mean, math.sqrt(var)

    def zscore(self, value: float) -> float:
        mean, std = self.mean_std()
        if std > 0:
            return (value - mean) / std
        return 0.0


class SymbolState:
    """Basis history and trigger cooldown for one symbol."""

    def __init__(self, cooldown: float, capacity: int = BASIS_WINDOW):
        self.basis = RollingSeries(capacity)
        self.cooldown = cooldown
        self.last_trigger: Optional[float] = None

    def observe(self, dev: float) -> float:
        """Push a deviation and return its z-score against the held samples."""
        self.basis.push(dev)
        return self.basis.zscore(dev)

    def in_cooldown(self, now: float) -> bool:
        if self.last_trigger is None:
            return False
        return now - self.last_trigger < self.cooldown

    def mark_triggered(self, now: float) -> None:
        self.last_trigger = now


@dataclass
class Position:
    """An engine-tracked open position, assumed filled at the order price."""
    order_id: str
    side: Side
    entry_price: float
    entry_time: float
    order_type: OrderType
    size: float

    def age(self, now: float) -> float:
        return now - self.entry_time

    def gross_pnl(self, exit_price: float) -> float:
        if self.side is Side.LONG:
            return (exit_price - self.entry_price) * self.size
        return (self.entry_price - exit_price) * self.size


@dataclass
class SymbolBook:
    """Open positions and realized results for one symbol."""
    state: SymbolState
    positions: List[Position] = field(default_factory=list)
    realized_pnl: float = 0.0
    closed_count: int = 0


class StateStore:
    """
    All per-symbol engine state, owned by one Engine.

    Books are created for every configured symbol up front and never removed.
    """

    def __init__(self, symbols: Iterable[str], cooldown: float, capacity: int = BASIS_WINDOW):
        self._cooldown = cooldown
        self._capacity = capacity
        self._books: Dict[str, SymbolBook] = {}
        for symbol in symbols:
            self._books[symbol] = SymbolBook(SymbolState(cooldown, capacity))

    def book(self, symbol: str) -> SymbolBook:
        book = self._books.get(symbol)
        if book is None:
            book = SymbolBook(SymbolState(self._cooldown, self._capacity))
            self._books[symbol] = book
        return book

    def state(self, symbol: str) -> SymbolState:
        return self.book(symbol).state

    def positions(self, symbol: str) -> List[Position]:
        return self.book(symbol).positions

    def add_position(self, symbol: str, position: Position) -> None:
        self.book(symbol).positions.append(position)

    def book_close(self, symbol: str, net_pnl: float) -> None:
        book = self.book(symbol)
        book.realized_pnl += net_pnl
        book.closed_count += 1

    def symbols(self) -> List[str]:
        return list(self._books)

    def open_count(self) -> int:
        return sum(len(b.positions) for b in self._books.values())

    def total_realized(self) -> float:
        return sum(b.realized_pnl for b in self._books.values())

    def exposure(self, symbol: str) -> Tuple[float, float]:
        """(long size, short size) of the engine's own open positions."""
        long_size = short_size = 0.0
        for p in self.positions(symbol):
            if p.side is Side.LONG:
                long_size += p.size
            else:
                short_size += p.size
        return long_size, short_size
