from __future__ import annotations

import abc
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger

from market_aggregator.core.exceptions import UnsupportedOperationError
from market_aggregator.dal.registry import ProviderDescriptor
from market_aggregator.dal.schemas import CandleData, SymbolInfo, TickData
from market_aggregator.dal.symbols import normalize_symbol
from market_aggregator.utils.http import bearer_headers, rapidapi_headers


@dataclass(slots=True)
class FetchRequest:
    symbol: str
    interval: str
    limit: int
    start: Optional[datetime] = None
    end: Optional[datetime] = None


@dataclass(slots=True)
class HttpCall:
    """A fully resolved GET request for one provider endpoint."""

    url: str
    params: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)


class ProviderPlugin(abc.ABC):
    """One upstream provider: symbol/interval dialect, endpoints and normalizers.

    Plugins never perform I/O; the aggregation service executes the
    ``HttpCall`` they build and hands the decoded payload back to the
    matching ``normalize_*`` method.
    """

    def __init__(self, descriptor: ProviderDescriptor, api_key: Optional[str] = None) -> None:
        self.descriptor = descriptor
        self.api_key = api_key or None

    @property
    def name(self) -> str:
        return self.descriptor.id

    def has_credentials(self) -> bool:
        return not self.descriptor.requires_api_key or bool(self.api_key)

    def auth_headers(self) -> Dict[str, str]:
        if not self.api_key:
            return {}
        if self.descriptor.credential == "rapidapi":
            return rapidapi_headers(self.api_key, self.descriptor.host)
        if self.descriptor.credential == "oanda":
            return bearer_headers(self.api_key)
        return {}

    def call(self, path: str, params: Dict[str, Any]) -> HttpCall:
        return HttpCall(
            url=f"{self.descriptor.url}{path}",
            params={k: v for k, v in params.items() if v is not None},
            headers=self.auth_headers(),
        )

    # -- dialect -----------------------------------------------------------------

    def map_symbol(self, symbol: str) -> str:
        return normalize_symbol(symbol)

    def map_interval(self, interval: str) -> str:
        return self.descriptor.interval_map.get(interval, self.descriptor.default_interval)

    # -- endpoints ---------------------------------------------------------------

    @abc.abstractmethod
    def candle_call(self, request: FetchRequest) -> HttpCall:
        """Build the historical candles request."""

    @abc.abstractmethod
    def quote_call(self, symbol: str) -> HttpCall:
        """Build the latest quote request."""

    def search_call(self, query: str) -> HttpCall:
        raise UnsupportedOperationError(f"{self.name} does not offer symbol search")

    # -- normalizers -------------------------------------------------------------

    @abc.abstractmethod
    def normalize_candles(self, raw: Any, symbol: str, interval: str) -> List[CandleData]:
        """Convert a raw candle payload; never raises."""

    @abc.abstractmethod
    def normalize_tick(self, raw: Any, symbol: str) -> Optional[TickData]:
        """Convert a raw quote payload; never raises."""

    def normalize_search(self, raw: Any, query: str) -> List[SymbolInfo]:
        return []


# ------------------------------------------------------------------------------
# Shared normalizer helpers
# ------------------------------------------------------------------------------


def warn(provider: str, field_name: str, symbol: str, message: str) -> None:
    logger.bind(provider=provider, field=field_name, symbol=symbol).warning(
        "[normalize] provider={} field={} symbol={} {}",
        provider,
        field_name,
        symbol,
        message,
    )


def safe_float(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        num = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(num):
        return None
    return num


def build_candle(
    provider: str,
    symbol: str,
    interval: str,
    timestamp_ms: Optional[int],
    open_: Any,
    high: Any,
    low: Any,
    close: Any,
    volume: Any,
) -> Optional[CandleData]:
    """Build one candle or return None (with a warning) when it cannot be trusted."""
    if timestamp_ms is None:
        warn(provider, "timestamp", symbol, "unparseable candle timestamp; dropped")
        return None
    prices = {"open": safe_float(open_), "high": safe_float(high), "low": safe_float(low), "close": safe_float(close)}
    for name, value in prices.items():
        if value is None:
            warn(provider, name, symbol, f"invalid {name} at ts={timestamp_ms}; dropped")
            return None
    vol = safe_float(volume)
    try:
        return CandleData(
            symbol=symbol,
            interval=interval,
            timestamp_ms=timestamp_ms,
            open=prices["open"],
            high=prices["high"],
            low=prices["low"],
            close=prices["close"],
            volume=vol if vol is not None else 0.0,
            source=provider,
        )
    except ValueError as exc:
        warn(provider, "ohlc", symbol, f"{exc} at ts={timestamp_ms}; dropped")
        return None


__all__ = [
    "FetchRequest",
    "HttpCall",
    "ProviderPlugin",
    "build_candle",
    "safe_float",
    "warn",
]
