"""Multi-provider market data aggregation layer."""

from .registry import DEFAULT_REGISTRY, ProviderDescriptor, ProviderRegistry
from .schemas import AssetClass, CandleData, DataType, SymbolInfo, TickData, candles_to_dataframe
from .symbols import classify

__all__ = [
    "AggregationService",
    "AssetClass",
    "CandleData",
    "DEFAULT_REGISTRY",
    "DataType",
    "ProviderDescriptor",
    "ProviderRegistry",
    "SymbolInfo",
    "TickData",
    "candles_to_dataframe",
    "classify",
    "fetch_candles_many",
    "fetch_quotes",
]


def __getattr__(name: str):
    if name == "AggregationService":
        from .manager import AggregationService as _AggregationService

        return _AggregationService
    if name in {"fetch_quotes", "fetch_candles_many"}:
        from . import helpers as _helpers  # local import

        return getattr(_helpers, name)
    raise AttributeError(f"module {__name__} has no attribute {name!r}")
