from __future__ import annotations

from typing import Any, List, Optional

from market_aggregator.core.timeutils import now_ms, parse_timestamp_ms, to_epoch_ms
from market_aggregator.dal.schemas import CandleData, SymbolInfo, TickData, sort_candles
from market_aggregator.dal.symbols import normalize_symbol, split_crypto_pair
from market_aggregator.dal.vendors.base import (
    FetchRequest,
    HttpCall,
    ProviderPlugin,
    build_candle,
    safe_float,
    warn,
)

PROVIDER = "binance"
MAX_KLINES = 1000
MAX_SEARCH_RESULTS = 10


class BinancePlugin(ProviderPlugin):
    """Binance spot REST API (public market data, no key)."""

    def map_symbol(self, symbol: str) -> str:
        sym = normalize_symbol(symbol)
        pair = split_crypto_pair(sym)
        if pair is None:
            return sym.replace("/", "").replace("-", "")
        base, quote = pair
        # Binance lists USD pairs against tether.
        if quote == "USD":
            quote = "USDT"
        return f"{base}{quote}"

    def candle_call(self, request: FetchRequest) -> HttpCall:
        return self.call(
            "/api/v3/klines",
            {
                "symbol": self.map_symbol(request.symbol),
                "interval": self.map_interval(request.interval),
                "limit": min(max(int(request.limit), 1), MAX_KLINES),
                "startTime": to_epoch_ms(request.start),
                "endTime": to_epoch_ms(request.end),
            },
        )

    def quote_call(self, symbol: str) -> HttpCall:
        return self.call("/api/v3/ticker/24hr", {"symbol": self.map_symbol(symbol)})

    def search_call(self, query: str) -> HttpCall:
        return self.call("/api/v3/ticker/price", {})

    def normalize_candles(self, raw: Any, symbol: str, interval: str) -> List[CandleData]:
        return normalize_candles(raw, symbol, interval, source=self.name)

    def normalize_tick(self, raw: Any, symbol: str) -> Optional[TickData]:
        return normalize_tick(raw, symbol, source=self.name)

    def normalize_search(self, raw: Any, query: str) -> List[SymbolInfo]:
        return normalize_search(raw, query, source=self.name)


def normalize_candles(raw: Any, symbol: str, interval: str, *, source: str = PROVIDER) -> List[CandleData]:
    """Klines arrive as ``[openTime, open, high, low, close, volume, closeTime, ...]``."""
    if not isinstance(raw, list):
        warn(source, "klines", symbol, "expected a list of klines")
        return []

    candles: List[CandleData] = []
    for row in raw:
        if not isinstance(row, (list, tuple)) or len(row) < 6:
            warn(source, "kline", symbol, "malformed kline row; dropped")
            continue
        candle = build_candle(
            source,
            symbol,
            interval,
            parse_timestamp_ms(row[0], unit="ms"),
            row[1],
            row[2],
            row[3],
            row[4],
            row[5],
        )
        if candle is not None:
            candles.append(candle)
    return sort_candles(candles)


def normalize_tick(raw: Any, symbol: str, *, source: str = PROVIDER) -> Optional[TickData]:
    if not isinstance(raw, dict):
        warn(source, "ticker", symbol, "expected a ticker object")
        return None
    price = safe_float(raw.get("lastPrice", raw.get("price")))
    if price is None:
        warn(source, "lastPrice", symbol, "missing or invalid last price")
        return None
    return TickData(
        symbol=symbol,
        timestamp_ms=parse_timestamp_ms(raw.get("closeTime"), unit="ms") or now_ms(),
        price=price,
        source=source,
        bid=safe_float(raw.get("bidPrice")),
        ask=safe_float(raw.get("askPrice")),
        volume=safe_float(raw.get("volume")),
    )


def normalize_search(raw: Any, query: str, *, source: str = PROVIDER) -> List[SymbolInfo]:
    if not isinstance(raw, list):
        warn(source, "tickers", query, "expected a list of tickers")
        return []
    needle = normalize_symbol(query).replace("/", "").replace("-", "")
    if not needle:
        return []
    results: List[SymbolInfo] = []
    for entry in raw:
        sym = entry.get("symbol") if isinstance(entry, dict) else None
        if not isinstance(sym, str) or needle not in sym:
            continue
        results.append(SymbolInfo(symbol=sym, name=sym, asset_type="crypto", source=source, exchange="Binance"))
        if len(results) >= MAX_SEARCH_RESULTS:
            break
    return results


__all__ = ["BinancePlugin", "normalize_candles", "normalize_search", "normalize_tick"]
