from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from market_aggregator.core.timeutils import now_ms, parse_timestamp_ms
from market_aggregator.dal.schemas import CandleData, TickData, sort_candles
from market_aggregator.dal.symbols import normalize_symbol, split_forex_pair
from market_aggregator.dal.vendors.base import (
    FetchRequest,
    HttpCall,
    ProviderPlugin,
    build_candle,
    safe_float,
    warn,
)

PROVIDER = "oanda"
MAX_COUNT = 5000


class OandaPlugin(ProviderPlugin):
    """OANDA v20 REST (practice host) for forex instruments."""

    def map_symbol(self, symbol: str) -> str:
        sym = normalize_symbol(symbol)
        pair = split_forex_pair(sym)
        if pair:
            return "_".join(pair)
        return sym.replace("/", "_")

    def candle_call(self, request: FetchRequest) -> HttpCall:
        params: Dict[str, Any] = {"granularity": self.map_interval(request.interval), "price": "M"}
        # v20 rejects count together with both from and to.
        if request.start is not None and request.end is not None:
            params["from"] = _rfc3339(request.start)
            params["to"] = _rfc3339(request.end)
        else:
            params["count"] = min(max(int(request.limit), 1), MAX_COUNT)
            if request.start is not None:
                params["from"] = _rfc3339(request.start)
            if request.end is not None:
                params["to"] = _rfc3339(request.end)
        return self.call(f"/v3/instruments/{self.map_symbol(request.symbol)}/candles", params)

    def quote_call(self, symbol: str) -> HttpCall:
        return self.call(
            f"/v3/instruments/{self.map_symbol(symbol)}/candles",
            {"granularity": "S5", "count": 1, "price": "MBA"},
        )

    def normalize_candles(self, raw: Any, symbol: str, interval: str) -> List[CandleData]:
        return normalize_candles(raw, symbol, interval, source=self.name)

    def normalize_tick(self, raw: Any, symbol: str) -> Optional[TickData]:
        return normalize_tick(raw, symbol, source=self.name)


def _rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _candles(raw: Any, source: str, symbol: str) -> Optional[List[Any]]:
    if isinstance(raw, dict) and raw.get("errorMessage"):
        warn(source, "errorMessage", symbol, f"upstream error: {raw['errorMessage']}")
        return None
    candles = raw.get("candles") if isinstance(raw, dict) else None
    if not isinstance(candles, list):
        warn(source, "candles", symbol, "missing candles array")
        return None
    return candles


def normalize_candles(raw: Any, symbol: str, interval: str, *, source: str = PROVIDER) -> List[CandleData]:
    rows = _candles(raw, source, symbol)
    if rows is None:
        return []
    candles: List[CandleData] = []
    for row in rows:
        mid = row.get("mid") if isinstance(row, dict) else None
        if not isinstance(mid, dict):
            warn(source, "mid", symbol, "candle without mid prices; dropped")
            continue
        candle = build_candle(
            source,
            symbol,
            interval,
            parse_timestamp_ms(row.get("time")),
            mid.get("o"),
            mid.get("h"),
            mid.get("l"),
            mid.get("c"),
            row.get("volume"),
        )
        if candle is not None:
            candles.append(candle)
    return sort_candles(candles)


def _close(row: Dict[str, Any], side: str) -> Optional[float]:
    block = row.get(side)
    return safe_float(block.get("c")) if isinstance(block, dict) else None


def normalize_tick(raw: Any, symbol: str, *, source: str = PROVIDER) -> Optional[TickData]:
    rows = _candles(raw, source, symbol)
    if not rows or not isinstance(rows[-1], dict):
        if rows is not None:
            warn(source, "candles", symbol, "no candle to derive a quote from")
        return None
    last = rows[-1]
    bid = _close(last, "bid")
    ask = _close(last, "ask")
    price = _close(last, "mid")
    if price is None and bid is not None and ask is not None:
        price = (bid + ask) / 2.0
    if price is None:
        warn(source, "mid.c", symbol, "missing or invalid mid price")
        return None
    return TickData(
        symbol=symbol,
        timestamp_ms=parse_timestamp_ms(last.get("time")) or now_ms(),
        price=price,
        source=source,
        bid=bid,
        ask=ask,
        volume=safe_float(last.get("volume")),
    )


__all__ = ["OandaPlugin", "normalize_candles", "normalize_tick"]
