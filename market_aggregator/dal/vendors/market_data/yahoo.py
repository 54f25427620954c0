from __future__ import annotations

from typing import Any, Dict, List, Optional

from market_aggregator.core.timeutils import now_ms, parse_timestamp_ms, to_epoch_ms
from market_aggregator.dal.schemas import AssetClass, CandleData, SymbolInfo, TickData, sort_candles
from market_aggregator.dal.symbols import classify, normalize_symbol, split_crypto_pair
from market_aggregator.dal.vendors.base import (
    FetchRequest,
    HttpCall,
    ProviderPlugin,
    build_candle,
    safe_float,
    warn,
)

PROVIDER = "yh_finance"

_INTERVAL_SECONDS = {
    "1m": 60,
    "5m": 300,
    "15m": 900,
    "30m": 1800,
    "60m": 3600,
    "1d": 86_400,
    "1wk": 604_800,
    "1mo": 2_592_000,
}

# Chart ranges the API accepts, smallest first.
_RANGES = (
    ("1d", 86_400),
    ("5d", 432_000),
    ("1mo", 2_678_400),
    ("3mo", 7_948_800),
    ("6mo", 15_897_600),
    ("1y", 31_622_400),
    ("2y", 63_244_800),
    ("5y", 158_112_000),
    ("10y", 316_224_000),
)


def chart_range(interval: str, limit: int) -> str:
    """Smallest chart range covering ``limit`` bars of ``interval``."""
    span = _INTERVAL_SECONDS.get(interval, 86_400) * max(int(limit), 1)
    for name, seconds in _RANGES:
        if seconds >= span:
            return name
    return "max"


class YahooFinancePlugin(ProviderPlugin):
    """YH Finance (Yahoo Finance mirror) through the RapidAPI gateway."""

    def map_symbol(self, symbol: str) -> str:
        sym = normalize_symbol(symbol)
        if classify(sym) is AssetClass.CRYPTO:
            pair = split_crypto_pair(sym)
            if pair:
                base, quote = pair
                return f"{base}-{'USD' if quote == 'USDT' else quote}"
        return sym

    def candle_call(self, request: FetchRequest) -> HttpCall:
        interval = self.map_interval(request.interval)
        params: Dict[str, Any] = {"symbol": self.map_symbol(request.symbol), "interval": interval, "region": "US"}
        if request.start is not None or request.end is not None:
            period2 = (to_epoch_ms(request.end) // 1000) if request.end is not None else now_ms() // 1000
            if request.start is not None:
                period1 = to_epoch_ms(request.start) // 1000
            else:
                period1 = period2 - _INTERVAL_SECONDS.get(interval, 86_400) * request.limit
            params["period1"] = period1
            params["period2"] = period2
        else:
            params["range"] = chart_range(interval, request.limit)
        return self.call("/stock/v3/get-chart", params)

    def quote_call(self, symbol: str) -> HttpCall:
        return self.call("/market/v2/get-quotes", {"region": "US", "symbols": self.map_symbol(symbol)})

    def search_call(self, query: str) -> HttpCall:
        return self.call("/auto-complete", {"q": query.strip(), "region": "US"})

    def normalize_candles(self, raw: Any, symbol: str, interval: str) -> List[CandleData]:
        return normalize_candles(raw, symbol, interval, source=self.name)

    def normalize_tick(self, raw: Any, symbol: str) -> Optional[TickData]:
        return normalize_tick(raw, symbol, source=self.name)

    def normalize_search(self, raw: Any, query: str) -> List[SymbolInfo]:
        return normalize_search(raw, query, source=self.name)


def _first_result(raw: Any, block: str) -> Optional[Dict[str, Any]]:
    container = raw.get(block) if isinstance(raw, dict) else None
    results = container.get("result") if isinstance(container, dict) else None
    if isinstance(results, list) and results and isinstance(results[0], dict):
        return results[0]
    return None


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def _column(values: List[Any], index: int) -> Any:
    return values[index] if index < len(values) else None


def normalize_candles(raw: Any, symbol: str, interval: str, *, source: str = PROVIDER) -> List[CandleData]:
    result = _first_result(raw, "chart")
    if result is None:
        warn(source, "chart.result", symbol, "missing chart result")
        return []
    timestamps = result.get("timestamp")
    indicators = result.get("indicators")
    quotes = indicators.get("quote") if isinstance(indicators, dict) else None
    quote = quotes[0] if isinstance(quotes, list) and quotes and isinstance(quotes[0], dict) else {}
    if not isinstance(timestamps, list) or not quote:
        warn(source, "indicators.quote", symbol, "missing timestamps or quote columns")
        return []

    columns = {name: _as_list(quote.get(name)) for name in ("open", "high", "low", "close", "volume")}
    candles: List[CandleData] = []
    for idx, stamp in enumerate(timestamps):
        candle = build_candle(
            source,
            symbol,
            interval,
            parse_timestamp_ms(stamp, unit="s"),
            _column(columns["open"], idx),
            _column(columns["high"], idx),
            _column(columns["low"], idx),
            _column(columns["close"], idx),
            _column(columns["volume"], idx),
        )
        if candle is not None:
            candles.append(candle)
    return sort_candles(candles)


def normalize_tick(raw: Any, symbol: str, *, source: str = PROVIDER) -> Optional[TickData]:
    result = _first_result(raw, "quoteResponse")
    if result is None:
        warn(source, "quoteResponse.result", symbol, "missing quote result")
        return None
    price = safe_float(result.get("regularMarketPrice"))
    if price is None:
        warn(source, "regularMarketPrice", symbol, "missing or invalid price")
        return None
    return TickData(
        symbol=symbol,
        timestamp_ms=parse_timestamp_ms(result.get("regularMarketTime"), unit="s") or now_ms(),
        price=price,
        source=source,
        bid=safe_float(result.get("bid")),
        ask=safe_float(result.get("ask")),
        volume=safe_float(result.get("regularMarketVolume")),
    )


def normalize_search(raw: Any, query: str, *, source: str = PROVIDER) -> List[SymbolInfo]:
    quotes = raw.get("quotes") if isinstance(raw, dict) else None
    if not isinstance(quotes, list):
        warn(source, "quotes", query, "missing auto-complete quotes")
        return []
    results: List[SymbolInfo] = []
    for entry in quotes:
        if not isinstance(entry, dict) or not entry.get("symbol"):
            continue
        results.append(
            SymbolInfo(
                symbol=str(entry["symbol"]),
                name=str(entry.get("shortname") or entry.get("longname") or entry["symbol"]),
                asset_type=str(entry.get("quoteType") or "unknown").lower(),
                source=source,
                exchange=entry.get("exchange"),
            )
        )
    return results


__all__ = ["YahooFinancePlugin", "chart_range", "normalize_candles", "normalize_search", "normalize_tick"]
