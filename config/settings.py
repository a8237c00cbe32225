"""
WEEX Basis Bot Configuration
Central configuration for the client, engine and execution backends
"""
import re
from typing import Annotated, Dict, List, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

DEFAULT_SYMBOLS = [
    "cmt_btcusdt", "cmt_ethusdt", "cmt_solusdt", "cmt_bnbusdt",
    "cmt_xrpusdt", "cmt_adausdt", "cmt_ltcusdt", "cmt_linkusdt",
]

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")
_UNIT_SECONDS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value) -> float:
    """Seconds from a number or a Go-style duration string ("250ms", "1m30s")."""
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    try:
        return float(text)
    except ValueError:
        pass
    parts = _DURATION_PART.findall(text)
    if not parts or "".join(n + u for n, u in parts) != text:
        raise ValueError(f"invalid duration: {value!r}")
    return sum(float(n) * _UNIT_SECONDS[u] for n, u in parts)


def parse_size_map(value) -> Dict[str, float]:
    """"sym:size,sym:size" -> {sym: size}; malformed or non-positive entries are dropped."""
    if isinstance(value, dict):
        return {k: float(v) for k, v in value.items() if float(v) > 0}
    out: Dict[str, float] = {}
    for part in str(value or "").split(","):
        part = part.strip()
        if not part or ":" not in part:
            continue
        sym, _, raw = part.partition(":")
        sym = sym.strip()
        try:
            size = float(raw.strip())
        except ValueError:
            continue
        if sym and size > 0:
            out[sym] = size
    return out


class Settings(BaseSettings):
    """Runtime configuration, read from WEEX_* environment variables."""

    # API
    base_url: str = Field(default="https://api-contract.weex.com", validation_alias="WEEX_BASE_URL")
    api_key: str = Field(default="", validation_alias="WEEX_API_KEY")
    api_secret: str = Field(default="", validation_alias="WEEX_API_SECRET")
    passphrase: str = Field(default="", validation_alias="WEEX_API_PASSPHRASE")
    http_timeout: float = Field(default=10.0, validation_alias="WEEX_HTTP_TIMEOUT")

    # Rate limits
    ip_capacity: int = Field(default=500, validation_alias="WEEX_IP_CAPACITY")
    uid_capacity: int = Field(default=500, validation_alias="WEEX_UID_CAPACITY")
    rate_window: float = Field(default=10.0, validation_alias="WEEX_RATE_WINDOW")

    # Scheduling
    symbols: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_SYMBOLS), validation_alias="WEEX_SYMBOLS"
    )
    query_interval: float = Field(default=1.0, gt=0, validation_alias="WEEX_QUERY_INTERVAL")
    metrics_interval: float = Field(default=10.0, gt=0, validation_alias="WEEX_METRICS_INTERVAL")

    # Logging
    log_dir: str = Field(default="../log", validation_alias="WEEX_LOG_DIR")
    log_level: str = Field(default="INFO", validation_alias="WEEX_LOG_LEVEL")

    # Signal and filters
    z_threshold: float = Field(default=1.2, validation_alias="WEEX_Z_THRESHOLD")
    funding_abs_max: float = Field(default=0.01, validation_alias="WEEX_FUND_RATE_MAX_ABS")
    spread_max_ratio: float = Field(default=0.005, validation_alias="WEEX_SPREAD_MAX_RATIO")
    cooldown: float = Field(default=60.0, gt=0, validation_alias="WEEX_COOLDOWN")
    hold_duration: float = Field(default=180.0, gt=0, validation_alias="WEEX_HOLD_DURATION")
    depth_limit: int = Field(default=15, validation_alias="WEEX_DEPTH_LIMIT")

    # Sizing
    base_unit: float = Field(default=0.001, validation_alias="WEEX_BASE_UNIT")
    min_size_map: Annotated[Dict[str, float], NoDecode] = Field(
        default_factory=dict, validation_alias="WEEX_MIN_SIZE_MAP"
    )
    max_notional_usd: float = Field(default=300.0, validation_alias="WEEX_MAX_NOTIONAL_USD")

    # Execution
    trader_mode: Literal["mock", "paper", "real", "live"] = Field(
        default="mock", validation_alias="WEEX_TRADER_MODE"
    )
    paper_fill_delay: float = Field(default=2.0, validation_alias="WEEX_PAPER_FILL_DELAY")
    flatten_on_start: bool = Field(default=False, validation_alias="WEEX_FLATTEN_ON_START")
    close_failure_policy: Literal["discard", "retain"] = Field(
        default="discard", validation_alias="WEEX_CLOSE_FAILURE_POLICY"
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "populate_by_name": True,
    }

    @field_validator("symbols", mode="before")
    @classmethod
    def _split_symbols(cls, value):
        if isinstance(value, str):
            return [s.strip() for s in value.split(",") if s.strip()]
        return value

    @field_validator("min_size_map", mode="before")
    @classmethod
    def _parse_min_sizes(cls, value):
        return parse_size_map(value)

    @field_validator(
        "query_interval", "metrics_interval", "cooldown", "hold_duration",
        "rate_window", "http_timeout", "paper_fill_delay",
        mode="before",
    )
    @classmethod
    def _parse_durations(cls, value):
        return parse_duration(value)

    @property
    def is_live(self) -> bool:
        return self.trader_mode in ("real", "live")

    def min_size(self, symbol: str) -> float:
        return self.min_size_map.get(symbol, 0.0)


def load_settings(**overrides) -> Settings:
    """Build settings from the environment, with explicit overrides winning."""
    return Settings(**overrides)
