"""
WEEX Basis Trading Layer

Core Components:
- RateLimiter: Dual-scope sliding-window admission control (IP + UID)
- Engine: basis z-score decision tree, position and PnL bookkeeping
- Traders: ShadowTrader (paper) and LiveTrader behind one Trader contract
"""

from basis_layer.rate_limiter import RateLimiter, RateLimitConfig, Scope
from basis_layer.symbol_state import Position, RollingSeries, StateStore, SymbolState
from basis_layer.executors import (
    ExecutionError,
    LiveTrader,
    Order,
    OrderStatus,
    OrderType,
    Side,
    Trader,
)
from basis_layer.shadow_engine import ShadowTrader
from basis_layer.engine import Engine, SignalSkipped

__all__ = [
    # Rate Limiter
    "RateLimiter",
    "RateLimitConfig",
    "Scope",
    # State
    "Position",
    "RollingSeries",
    "StateStore",
    "SymbolState",
    # Executors
    "ExecutionError",
    "LiveTrader",
    "Order",
    "OrderStatus",
    "OrderType",
    "Side",
    "Trader",
    "ShadowTrader",
    # Engine
    "Engine",
    "SignalSkipped",
]
