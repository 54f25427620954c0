from __future__ import annotations

from typing import Any, Dict, List, Optional

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

PROVIDER = "alpha_vantage"

# Payload keys Alpha Vantage uses instead of an error status.
NOTICE_KEYS = ("Note", "Information", "Error Message")

_PERIODS = {"daily": "DAILY", "weekly": "WEEKLY", "monthly": "MONTHLY"}


class AlphaVantagePlugin(ProviderPlugin):
    """Alpha Vantage through the RapidAPI gateway.

    Equities use ``TIME_SERIES_*``, forex ``FX_*`` and crypto
    ``CRYPTO_INTRADAY`` / ``DIGITAL_CURRENCY_*``; the mapped interval picks
    the intraday or period flavour.
    """

    def map_symbol(self, symbol: str) -> str:
        sym = normalize_symbol(symbol)
        asset_class = classify(sym)
        if asset_class is AssetClass.FOREX:
            pair = split_forex_pair(sym)
            if pair:
                return "".join(pair)
        if asset_class is AssetClass.CRYPTO:
            pair = split_crypto_pair(sym)
            if pair:
                return pair[0]
        return strip_exchange_suffix(sym)

    def _series_params(self, symbol: str, interval: str) -> Dict[str, Any]:
        sym = normalize_symbol(symbol)
        asset_class = classify(sym)
        mapped = self.map_interval(interval)
        period = _PERIODS.get(mapped)

        if asset_class is AssetClass.FOREX and split_forex_pair(sym):
            base, quote = split_forex_pair(sym)
            params: Dict[str, Any] = {"from_symbol": base, "to_symbol": quote}
            params["function"] = f"FX_{period}" if period else "FX_INTRADAY"
        elif asset_class is AssetClass.CRYPTO and split_crypto_pair(sym):
            base, _ = split_crypto_pair(sym)
            params = {"symbol": base, "market": "USD"}
            params["function"] = f"DIGITAL_CURRENCY_{period}" if period else "CRYPTO_INTRADAY"
        else:
            params = {"symbol": self.map_symbol(sym)}
            params["function"] = f"TIME_SERIES_{period}" if period else "TIME_SERIES_INTRADAY"

        if period is None:
            params["interval"] = mapped
        return params

    def candle_call(self, request: FetchRequest) -> HttpCall:
        params = self._series_params(request.symbol, request.interval)
        params["outputsize"] = "compact" if int(request.limit) <= 100 else "full"
        return self.call("/query", params)

    def quote_call(self, symbol: str) -> HttpCall:
        sym = normalize_symbol(symbol)
        asset_class = classify(sym)
        pair = None
        if asset_class is AssetClass.FOREX:
            pair = split_forex_pair(sym)
        elif asset_class is AssetClass.CRYPTO:
            pair = split_crypto_pair(sym)
        if pair:
            quote = "USD" if pair[1] == "USDT" else pair[1]
            return self.call(
                "/query",
                {"function": "CURRENCY_EXCHANGE_RATE", "from_currency": pair[0], "to_currency": quote},
            )
        return self.call("/query", {"function": "GLOBAL_QUOTE", "symbol": self.map_symbol(sym)})

    def search_call(self, query: str) -> HttpCall:
        return self.call("/query", {"function": "SYMBOL_SEARCH", "keywords": query.strip()})

    def normalize_candles(self, raw: Any, symbol: str, interval: str) -> List[CandleData]:
        return normalize_candles(raw, symbol, interval, source=self.name)

    def normalize_tick(self, raw: Any, symbol: str) -> Optional[TickData]:
        return normalize_tick(raw, symbol, source=self.name)

    def normalize_search(self, raw: Any, query: str) -> List[SymbolInfo]:
        return normalize_search(raw, query, source=self.name)


def _notice(raw: Any, source: str, symbol: str) -> bool:
    if not isinstance(raw, dict):
        return False
    for key in NOTICE_KEYS:
        if raw.get(key):
            warn(source, key, symbol, f"upstream notice: {raw[key]}")
            return True
    return False


def _field(entry: Dict[str, Any], name: str) -> Any:
    """Find ``name`` among numbered keys such as ``"1. open"`` or ``"1a. open (USD)"``."""
    for key, value in entry.items():
        label = key.split(". ", 1)[-1]
        if label.startswith(name):
            return value
    return None


def normalize_candles(raw: Any, symbol: str, interval: str, *, source: str = PROVIDER) -> List[CandleData]:
    if _notice(raw, source, symbol):
        return []
    if not isinstance(raw, dict):
        warn(source, "payload", symbol, "expected a JSON object")
        return []
    series_key = next((key for key in raw if "Time Series" in key), None)
    series = raw.get(series_key) if series_key else None
    if not isinstance(series, dict):
        warn(source, "Time Series", symbol, "missing time series block")
        return []

    candles: List[CandleData] = []
    for stamp, entry in series.items():
        if not isinstance(entry, dict):
            warn(source, "Time Series", symbol, f"non-object entry at {stamp}; dropped")
            continue
        candle = build_candle(
            source,
            symbol,
            interval,
            parse_timestamp_ms(stamp),
            _field(entry, "open"),
            _field(entry, "high"),
            _field(entry, "low"),
            _field(entry, "close"),
            _field(entry, "volume"),
        )
        if candle is not None:
            candles.append(candle)
    return sort_candles(candles)


def normalize_tick(raw: Any, symbol: str, *, source: str = PROVIDER) -> Optional[TickData]:
    if _notice(raw, source, symbol):
        return None
    if not isinstance(raw, dict):
        warn(source, "payload", symbol, "expected a JSON object")
        return None

    rate = raw.get("Realtime Currency Exchange Rate")
    if isinstance(rate, dict):
        price = safe_float(_field(rate, "Exchange Rate"))
        if price is None:
            warn(source, "Exchange Rate", symbol, "missing or invalid exchange rate")
            return None
        return TickData(
            symbol=symbol,
            timestamp_ms=parse_timestamp_ms(_field(rate, "Last Refreshed")) or now_ms(),
            price=price,
            source=source,
            bid=safe_float(_field(rate, "Bid Price")),
            ask=safe_float(_field(rate, "Ask Price")),
        )

    quote = raw.get("Global Quote")
    if not isinstance(quote, dict):
        warn(source, "Global Quote", symbol, "missing quote block")
        return None
    price = safe_float(_field(quote, "price"))
    if price is None:
        warn(source, "05. price", symbol, "missing or invalid price")
        return None
    return TickData(
        symbol=symbol,
        timestamp_ms=parse_timestamp_ms(_field(quote, "latest trading day")) or now_ms(),
        price=price,
        source=source,
        volume=safe_float(_field(quote, "volume")),
    )


def normalize_search(raw: Any, query: str, *, source: str = PROVIDER) -> List[SymbolInfo]:
    if _notice(raw, source, query):
        return []
    matches = raw.get("bestMatches") if isinstance(raw, dict) else None
    if not isinstance(matches, list):
        warn(source, "bestMatches", query, "missing search matches")
        return []
    results: List[SymbolInfo] = []
    for entry in matches:
        if not isinstance(entry, dict):
            continue
        sym = _field(entry, "symbol")
        if not sym:
            continue
        results.append(
            SymbolInfo(
                symbol=str(sym),
                name=str(_field(entry, "name") or sym),
                asset_type=str(_field(entry, "type") or "unknown"),
                source=source,
                exchange=_field(entry, "region"),
            )
        )
    return results


__all__ = ["AlphaVantagePlugin", "NOTICE_KEYS", "normalize_candles", "normalize_search", "normalize_tick"]
