from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional

from market_aggregator.core.timeutils import now_ms, parse_timestamp_ms
from market_aggregator.dal.schemas import AssetClass, CandleData, SymbolInfo, TickData, sort_candles
from market_aggregator.dal.symbols import (
    classify,
    normalize_symbol,
    split_crypto_pair,
    split_forex_pair,
    strip_exchange_suffix,
)
from market_aggregator.dal.vendors.base import (
    FetchRequest,
    HttpCall,
    ProviderPlugin,
    build_candle,
    safe_float,
    warn,
)

PROVIDER = "twelve_data"
MAX_OUTPUTSIZE = 5000


class TwelveDataPlugin(ProviderPlugin):
    """Twelve Data through the RapidAPI gateway."""

    def map_symbol(self, symbol: str) -> str:
        sym = normalize_symbol(symbol)
        asset_class = classify(sym)
        if asset_class is AssetClass.CRYPTO:
            pair = split_crypto_pair(sym)
            if pair:
                base, quote = pair
                return f"{base}/{'USD' if quote == 'USDT' else quote}"
        if asset_class is AssetClass.FOREX:
            pair = split_forex_pair(sym)
            if pair:
                return "/".join(pair)
        return strip_exchange_suffix(sym)

    def candle_call(self, request: FetchRequest) -> HttpCall:
        return self.call(
            "/time_series",
            {
                "symbol": self.map_symbol(request.symbol),
                "interval": self.map_interval(request.interval),
                "outputsize": min(max(int(request.limit), 1), MAX_OUTPUTSIZE),
                "start_date": _format_timestamp(request.start),
                "end_date": _format_timestamp(request.end),
                "timezone": "UTC",
                "format": "json",
            },
        )

    def quote_call(self, symbol: str) -> HttpCall:
        return self.call("/quote", {"symbol": self.map_symbol(symbol), "format": "json"})

    def search_call(self, query: str) -> HttpCall:
        return self.call("/symbol_search", {"symbol": query.strip(), "outputsize": 10})

    def normalize_candles(self, raw: Any, symbol: str, interval: str) -> List[CandleData]:
        return normalize_candles(raw, symbol, interval, source=self.name)

    def normalize_tick(self, raw: Any, symbol: str) -> Optional[TickData]:
        return normalize_tick(raw, symbol, source=self.name)

    def normalize_search(self, raw: Any, query: str) -> List[SymbolInfo]:
        return normalize_search(raw, query, source=self.name)


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _is_error(raw: Any, source: str, symbol: str) -> bool:
    if isinstance(raw, dict) and raw.get("status") == "error":
        warn(source, "status", symbol, f"upstream error: {raw.get('message')}")
        return True
    return False


def normalize_candles(raw: Any, symbol: str, interval: str, *, source: str = PROVIDER) -> List[CandleData]:
    if _is_error(raw, source, symbol):
        return []
    values = raw.get("values") if isinstance(raw, dict) else None
    if not isinstance(values, list):
        warn(source, "values", symbol, "missing time series values")
        return []

    candles: List[CandleData] = []
    # Twelve Data returns newest first; sort_candles restores chronological order
    for entry in values:
        if not isinstance(entry, dict):
            warn(source, "values", symbol, "non-object entry; dropped")
            continue
        candle = build_candle(
            source,
            symbol,
            interval,
            parse_timestamp_ms(entry.get("datetime")),
            entry.get("open"),
            entry.get("high"),
            entry.get("low"),
            entry.get("close"),
            entry.get("volume"),
        )
        if candle is not None:
            candles.append(candle)
    return sort_candles(candles)


def normalize_tick(raw: Any, symbol: str, *, source: str = PROVIDER) -> Optional[TickData]:
    if _is_error(raw, source, symbol):
        return None
    if not isinstance(raw, dict):
        warn(source, "quote", symbol, "expected a quote object")
        return None
    price = safe_float(raw.get("price"))
    if price is None:
        price = safe_float(raw.get("close"))
    if price is None:
        warn(source, "price", symbol, "missing or invalid price")
        return None
    ts = parse_timestamp_ms(raw.get("timestamp"), unit="s") or parse_timestamp_ms(raw.get("datetime"))
    return TickData(
        symbol=symbol,
        timestamp_ms=ts or now_ms(),
        price=price,
        source=source,
        bid=safe_float(raw.get("bid")),
        ask=safe_float(raw.get("ask")),
        volume=safe_float(raw.get("volume")),
    )


def normalize_search(raw: Any, query: str, *, source: str = PROVIDER) -> List[SymbolInfo]:
    data = raw.get("data") if isinstance(raw, dict) else None
    if not isinstance(data, list):
        warn(source, "data", query, "missing symbol search data")
        return []
    results: List[SymbolInfo] = []
    for entry in data:
        if not isinstance(entry, dict) or not entry.get("symbol"):
            continue
        results.append(
            SymbolInfo(
                symbol=str(entry["symbol"]),
                name=str(entry.get("instrument_name") or entry["symbol"]),
                asset_type=str(entry.get("instrument_type") or "unknown"),
                source=source,
                exchange=entry.get("exchange"),
            )
        )
    return results


__all__ = ["TwelveDataPlugin", "normalize_candles", "normalize_search", "normalize_tick"]
