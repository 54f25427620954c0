"""Run independent logical calls concurrently against one shared service."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, Iterable, List, TypeVar, Union

from loguru import logger

from market_aggregator.core.exceptions import AggregationError
from market_aggregator.dal.manager import AggregationService
from market_aggregator.dal.schemas import CandleData, TickData

T = TypeVar("T")


def _fan_out(
    symbols: Iterable[str],
    call: Callable[[str], T],
    max_workers: int,
) -> Dict[str, Union[T, AggregationError]]:
    unique = list(dict.fromkeys(symbols))
    results: Dict[str, Union[T, AggregationError]] = {}
    if not unique:
        return results
    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(unique)))) as executor:
        future_map = {executor.submit(call, symbol): symbol for symbol in unique}
        for future in as_completed(future_map):
            symbol = future_map[future]
            try:
                results[symbol] = future.result()
            except AggregationError as exc:
                logger.warning("[dal] symbol={} failed: {}", symbol, exc)
                results[symbol] = exc
    # keep caller order
    return {symbol: results[symbol] for symbol in unique}


def fetch_quotes(
    service: AggregationService,
    symbols: Iterable[str],
    *,
    max_workers: int = 4,
) -> Dict[str, Union[TickData, AggregationError]]:
    return _fan_out(symbols, service.get_quote, max_workers)


def fetch_candles_many(
    service: AggregationService,
    symbols: Iterable[str],
    interval: str = "1d",
    limit: int = 100,
    *,
    max_workers: int = 4,
) -> Dict[str, Union[List[CandleData], AggregationError]]:
    return _fan_out(symbols, lambda symbol: service.get_candles(symbol, interval, limit), max_workers)


__all__ = ["fetch_candles_many", "fetch_quotes"]
