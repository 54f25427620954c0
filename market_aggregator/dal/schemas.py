from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Iterable, Optional, Sequence

import pandas as pd

CANONICAL_INTERVALS: tuple[str, ...] = ("1m", "5m", "15m", "30m", "1h", "4h", "1d", "1w", "1M")


class AssetClass(str, Enum):
    CRYPTO = "crypto"
    FOREX = "forex"
    STOCK = "stock"
    UNKNOWN = "unknown"


class DataType(str, Enum):
    CANDLES = "candles"
    QUOTE = "quote"
    SEARCH = "search"


@dataclass(frozen=True, slots=True)
class CandleData:
    """Normalized OHLCV candle; ``timestamp_ms`` is the bucket open time."""

    symbol: str
    interval: str
    timestamp_ms: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    source: str

    def __post_init__(self) -> None:
        values = (self.open, self.high, self.low, self.close, self.volume)
        if not all(math.isfinite(v) for v in values):
            raise ValueError("non-finite price or volume")
        if self.high < max(self.open, self.close):
            raise ValueError("high below open/close")
        if self.low > min(self.open, self.close):
            raise ValueError("low above open/close")
        if self.volume < 0:
            raise ValueError("negative volume")

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class TickData:
    """Latest trade/quote snapshot."""

    symbol: str
    timestamp_ms: int
    price: float
    source: str
    bid: Optional[float] = None
    ask: Optional[float] = None
    volume: Optional[float] = None

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True, slots=True)
class SymbolInfo:
    symbol: str
    name: str
    asset_type: str
    source: str
    exchange: Optional[str] = None

    def as_dict(self) -> dict:
        return asdict(self)


def sort_candles(candles: Iterable[CandleData]) -> list[CandleData]:
    """Order candles by open time; a repeated timestamp keeps the last candle seen."""
    by_ts: dict[int, CandleData] = {}
    for candle in candles:
        by_ts[candle.timestamp_ms] = candle
    return [by_ts[ts] for ts in sorted(by_ts)]


def candles_to_dataframe(candles: Sequence[CandleData]) -> pd.DataFrame:
    """Convert candles to a UTC-indexed frame for indicator consumers."""
    if not candles:
        return pd.DataFrame(
            columns=["open", "high", "low", "close", "volume", "source"],
            index=pd.DatetimeIndex([], tz="UTC", name="timestamp"),
        )
    raw = [
        {
            "timestamp": candle.timestamp_ms,
            "open": candle.open,
            "high": candle.high,
            "low": candle.low,
            "close": candle.close,
            "volume": candle.volume,
            "source": candle.source,
        }
        for candle in candles
    ]
    df = pd.DataFrame(raw)
    df["timestamp"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True)
    return df.set_index("timestamp").sort_index()


__all__ = [
    "CANONICAL_INTERVALS",
    "AssetClass",
    "CandleData",
    "DataType",
    "SymbolInfo",
    "TickData",
    "candles_to_dataframe",
    "sort_candles",
]
