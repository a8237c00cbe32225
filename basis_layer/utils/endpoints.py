"""
WEEX contract API endpoint table and wire models.

All numeric fields arrive string-encoded and are parsed on demand with
`as_float`, so a malformed number never fails the whole response.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from basis_layer.rate_limiter import Scope


@dataclass(frozen=True)
class Endpoint:
    path: str
    method: str
    weight: int
    scope: Scope


EP_SERVER_TIME = Endpoint("/capi/v2/market/time", "GET", 1, Scope.IP)
EP_TICKER = Endpoint("/capi/v2/market/ticker", "GET", 1, Scope.IP)
EP_INDEX = Endpoint("/capi/v2/market/index", "GET", 1, Scope.IP)
EP_DEPTH = Endpoint("/capi/v2/market/depth", "GET", 1, Scope.IP)
EP_FUND_RATE = Endpoint("/capi/v2/market/currentFundRate", "GET", 1, Scope.IP)
EP_ACCOUNTS = Endpoint("/capi/v2/account/accounts", "GET", 5, Scope.UID)
EP_CONTRACTS = Endpoint("/capi/v2/market/contracts", "GET", 10, Scope.IP)
EP_PLACE_ORDER = Endpoint("/capi/v2/order/placeOrder", "POST", 2, Scope.UID)

USDT_COIN_ID = 2


def as_float(value: Optional[str]) -> float:
    """Parse a string-encoded number, 0.0 when missing or malformed."""
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class WireModel(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


class ServerTime(WireModel):
    timestamp: int


class Ticker(WireModel):
    symbol: str = ""
    last: str = ""
    best_ask: str = ""
    best_bid: str = ""
    high_24h: str = ""
    low_24h: str = ""
    volume_24h: str = ""
    price_change_percent: str = Field(default="", alias="priceChangePercent")
    base_volume: str = ""
    mark_price: str = Field(default="", alias="markPrice")
    index_price: str = Field(default="", alias="indexPrice")
    timestamp: str = ""


class IndexResp(WireModel):
    symbol: str = ""
    index: str = ""
    timestamp: str = ""


class DepthResp(WireModel):
    asks: List[List[str]] = Field(default_factory=list)
    bids: List[List[str]] = Field(default_factory=list)
    timestamp: str = ""

    def best_ask(self) -> float:
        return as_float(self.asks[0][0]) if self.asks and self.asks[0] else 0.0

    def best_bid(self) -> float:
        return as_float(self.bids[0][0]) if self.bids and self.bids[0] else 0.0


class FundRate(WireModel):
    symbol: str = ""
    funding_rate: str = Field(default="", alias="fundingRate")
    collect_cycle: int = Field(default=0, alias="collectCycle")
    timestamp: int = 0


class Contract(WireModel):
    symbol: str = ""
    contract_id: Optional[int] = None
    tick_size: str = ""
    size_increment: str = ""
    maker_fee_rate: str = Field(default="", alias="makerFeeRate")
    taker_fee_rate: str = Field(default="", alias="takerFeeRate")


class LeverageSetting(WireModel):
    isolated_long: str = Field(default="", alias="isolated_long_leverage")
    isolated_short: str = Field(default="", alias="isolated_short_leverage")
    cross: str = Field(default="", alias="cross_leverage")
    shared: str = Field(default="", alias="shared_leverage")


class AccountInfo(WireModel):
    contract_leverage: Dict[str, LeverageSetting] = Field(
        default_factory=dict, alias="contract_id_to_leverage_setting"
    )


class Collateral(WireModel):
    coin_id: int = 0
    amount: str = ""
    equity: str = ""
    available: str = ""


class AccountPosition(WireModel):
    contract_id: int = 0
    side: str = ""
    margin_mode: str = ""
    leverage: str = ""
    size: str = ""


class AccountsResp(WireModel):
    account: AccountInfo = Field(default_factory=AccountInfo)
    collateral: List[Collateral] = Field(default_factory=list)
    position: List[AccountPosition] = Field(default_factory=list)


class PlaceOrderRequest(WireModel):
    """Order placement body. type: 1 open long, 2 open short, 3 close long, 4 close short."""
    symbol: str
    client_oid: str
    size: str
    type: str
    order_type: str = "0"
    match_price: str = "0"
    price: Optional[str] = None

    def to_body(self) -> dict:
        return self.model_dump(exclude_none=True)


class PlaceOrderResp(WireModel):
    client_oid: str = ""
    order_id: str = ""


@dataclass
class PositionInfo:
    """An exchange-reported open position, resolved to a symbol."""
    symbol: str
    side: str
    leverage: float
    size: float
