"""
WEEX Contract Client
Rate-limited, HMAC-signed access to the contract REST API
"""
import base64
import hashlib
import hmac
import json
import time
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from basis_layer.rate_limiter import RateLimiter
from basis_layer.utils.endpoints import (
    EP_ACCOUNTS,
    EP_CONTRACTS,
    EP_DEPTH,
    EP_FUND_RATE,
    EP_INDEX,
    EP_PLACE_ORDER,
    EP_SERVER_TIME,
    EP_TICKER,
    USDT_COIN_ID,
    AccountsResp,
    Contract,
    DepthResp,
    Endpoint,
    FundRate,
    IndexResp,
    PlaceOrderRequest,
    PlaceOrderResp,
    PositionInfo,
    ServerTime,
    Ticker,
    as_float,
)
from utils.event_log import EventLog


class ExchangeError(Exception):
    """Base class for failures talking to the exchange."""


class NetworkError(ExchangeError):
    """The request never produced an HTTP response."""


class StatusError(ExchangeError):
    """The exchange answered with a non-200 status."""

    def __init__(self, code: int, body: str):
        super().__init__(f"status {code}: {body[:200]}")
        self.code = code
        self.body = body


class DecodeError(ExchangeError):
    """The response body does not match the expected schema."""


def sign_request(
    secret: str,
    timestamp: str,
    method: str,
    path: str,
    query: str = "",
    body: str = "",
) -> str:
    """base64(HMAC-SHA256(secret, ts + method + path [+ "?" + query] [+ body]))"""
    payload = timestamp + method.upper() + path
    if query:
        payload += "?" + query
    if body:
        payload += body
    digest = hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def encode_query(params: Optional[Dict[str, Any]]) -> str:
    """Key-sorted form encoding, identical for signing and sending."""
    if not params:
        return ""
    return urlencode(sorted((k, str(v)) for k, v in params.items()))


class WeexClient:
    """
    High-level client for the WEEX contract API.
    Every call clears the rate limiter for its endpoint's scope and weight
    before touching the network. Nothing is retried here.
    """

    BASE_URL = "https://api-contract.weex.com"

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        passphrase: str,
        rate_limiter: RateLimiter,
        log: EventLog,
        base_url: str = BASE_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.api_key = api_key
        self.api_secret = api_secret
        self.passphrase = passphrase
        self.base_url = base_url.rstrip("/")
        self.rl = rate_limiter
        self.log = log
        self._clock = clock
        self._timeout = timeout
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None
        self.drift_ms = 0

    @classmethod
    def from_settings(cls, settings, rate_limiter: RateLimiter, log: EventLog, **kwargs) -> "WeexClient":
        return cls(
            api_key=settings.api_key,
            api_secret=settings.api_secret,
            passphrase=settings.passphrase,
            rate_limiter=rate_limiter,
            log=log,
            base_url=settings.base_url,
            timeout=settings.http_timeout,
            **kwargs,
        )

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self._timeout,
                transport=self._transport,
                headers={"Content-Type": "application/json", "locale": "zh-CN"},
            )
        return self._http

    async def close(self):
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()

    async def __aenter__(self) -> "WeexClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    # =========================================================================
    # TIME
    # =========================================================================

    def server_timestamp(self) -> str:
        """Local wall clock in ms, corrected by the last measured server drift."""
        return str(int(self._clock() * 1000) + self.drift_ms)

    async def sync_server_time(self) -> int:
        """Measure server-minus-local drift once; it is not refreshed afterwards."""
        resp = await self._public(EP_SERVER_TIME, None, ServerTime)
        self.drift_ms = resp.timestamp - int(self._clock() * 1000)
        self.log.info("sync_time", server_ts=resp.timestamp, drift_ms=self.drift_ms)
        return self.drift_ms

    # =========================================================================
    # MARKET DATA
    # =========================================================================

    async def get_ticker(self, symbol: str) -> Ticker:
        return await self._public(EP_TICKER, {"symbol": symbol}, Ticker)

    async def get_index(self, symbol: str) -> IndexResp:
        return await self._public(EP_INDEX, {"symbol": symbol}, IndexResp)

    async def get_depth(self, symbol: str, limit: int = 0) -> DepthResp:
        params: Dict[str, Any] = {"symbol": symbol}
        if limit > 0:
            params["limit"] = limit
        return await self._public(EP_DEPTH, params, DepthResp)

    async def get_current_fund_rate(self, symbol: str = "") -> List[FundRate]:
        params = {"symbol": symbol} if symbol else None
        return await self._public(EP_FUND_RATE, params, List[FundRate])

    async def get_contracts(self, symbol: str = "") -> List[Contract]:
        params = {"symbol": symbol} if symbol else None
        return await self._public(EP_CONTRACTS, params, List[Contract])

    # =========================================================================
    # ACCOUNT
    # =========================================================================

    async def get_accounts(self) -> AccountsResp:
        return await self._private(EP_ACCOUNTS, None, None, AccountsResp)

    async def ping_private(self) -> None:
        await self._private(EP_ACCOUNTS, None, None, None)

    async def get_positions(self) -> List[PositionInfo]:
        """Open positions with contract ids resolved to symbols."""
        acc = await self.get_accounts()
        contracts = await self.get_contracts()
        id2sym = {c.contract_id: c.symbol for c in contracts if c.contract_id and c.symbol}

        out = []
        for p in acc.position:
            symbol = id2sym.get(p.contract_id)
            if not symbol:
                continue
            if p.leverage:
                leverage = as_float(p.leverage)
            else:
                leverage = self._resolve_leverage(acc, p.contract_id, p.margin_mode, p.side)
            out.append(PositionInfo(
                symbol=symbol,
                side=p.side.lower(),
                leverage=leverage,
                size=as_float(p.size),
            ))
        return out

    @staticmethod
    def _resolve_leverage(acc: AccountsResp, contract_id: int, margin_mode: str, side: str) -> float:
        setting = acc.account.contract_leverage.get(str(contract_id))
        if setting is None:
            return 0.0
        mode = margin_mode.upper()
        if mode == "CROSS":
            return as_float(setting.cross)
        if mode == "ISOLATED":
            if side.upper() == "LONG":
                return as_float(setting.isolated_long)
            return as_float(setting.isolated_short)
        return as_float(setting.shared)

    async def get_collateral_usdt(self) -> Tuple[float, float]:
        """(available, equity) of the USDT collateral, falling back to `amount`."""
        acc = await self.get_accounts()
        available = equity = 0.0
        for col in acc.collateral:
            if col.coin_id != USDT_COIN_ID:
                continue
            available = as_float(col.available)
            equity = as_float(col.equity)
            if available == 0:
                available = as_float(col.amount)
            if equity == 0:
                equity = as_float(col.amount)
            break
        return available, equity

    # =========================================================================
    # ORDERS
    # =========================================================================

    async def place_order(self, req: PlaceOrderRequest) -> PlaceOrderResp:
        return await self._private(EP_PLACE_ORDER, None, req.to_body(), PlaceOrderResp)

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    async def _public(self, ep: Endpoint, params: Optional[Dict[str, Any]], result: Any) -> Any:
        await self.rl.acquire(ep.scope, ep.weight)
        query = encode_query(params)
        url = ep.path + ("?" + query if query else "")
        return await self._send("http_public", ep, url, {}, None, result)

    async def _private(
        self,
        ep: Endpoint,
        params: Optional[Dict[str, Any]],
        body: Optional[dict],
        result: Any,
    ) -> Any:
        await self.rl.acquire(ep.scope, ep.weight)
        query = encode_query(params)
        url = ep.path + ("?" + query if query else "")
        body_text = json.dumps(body, separators=(",", ":")) if body is not None else ""
        ts = self.server_timestamp()
        headers = {
            "ACCESS-KEY": self.api_key,
            "ACCESS-SIGN": sign_request(self.api_secret, ts, ep.method, ep.path, query, body_text),
            "ACCESS-TIMESTAMP": ts,
            "ACCESS-PASSPHRASE": self.passphrase,
        }
        content = body_text.encode("utf-8") if body_text else None
        return await self._send("http_private", ep, url, headers, content, result)

    async def _send(
        self,
        tag: str,
        ep: Endpoint,
        url: str,
        headers: Dict[str, str],
        content: Optional[bytes],
        result: Any,
    ) -> Any:
        http = self._get_http()
        try:
            resp = await http.request(ep.method, url, headers=headers, content=content)
        except httpx.DecodingError as e:
            # Corrupt Content-Encoding body
            self.log.error(tag.replace("http", "json"), path=ep.path, err=repr(e))
            raise DecodeError(f"{ep.path}: {e}") from e
        except httpx.RequestError as e:
            self.log.error(tag, path=ep.path, err=repr(e))
            raise NetworkError(f"{ep.method} {ep.path}: {e!r}") from e

        if resp.status_code != 200:
            self.log.error(tag, path=ep.path, code=resp.status_code, body=resp.text)
            raise StatusError(resp.status_code, resp.text)

        if result is None:
            return None
        try:
            return _decode(resp.content, result)
        except (ValueError, ValidationError) as e:
            self.log.error(tag.replace("http", "json"), path=ep.path, err=str(e))
            raise DecodeError(f"{ep.path}: {e}") from e


def _decode(raw: bytes, result: Any) -> Any:
    if isinstance(result, type) and issubclass(result, BaseModel):
        return result.model_validate_json(raw)
    return TypeAdapter(result).validate_json(raw)
