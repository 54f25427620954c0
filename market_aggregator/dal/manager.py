from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TypeVar

import requests
from loguru import logger

from market_aggregator.core.exceptions import (
    SOFT_ERRORS,
    AllProvidersFailedError,
    ConfigurationError,
    NormalizationError,
    ProviderRequestError,
    UnsupportedOperationError,
)
from market_aggregator.core.timeutils import to_epoch_ms
from market_aggregator.dal.cache import CacheSweeper, CandleKey, TTLCache, candle_key
from market_aggregator.dal.ratelimit import RateLimiter
from market_aggregator.dal.registry import DEFAULT_REGISTRY, ProviderRegistry
from market_aggregator.dal.results import AttemptOutcome, AttemptRecord
from market_aggregator.dal.schemas import (
    CANONICAL_INTERVALS,
    CandleData,
    DataType,
    SymbolInfo,
    TickData,
)
from market_aggregator.dal.selector import ProviderSelector
from market_aggregator.dal.symbols import classify, normalize_symbol
from market_aggregator.dal.vendors import build_plugins
from market_aggregator.dal.vendors.base import FetchRequest, HttpCall, ProviderPlugin
from market_aggregator.settings import AggregatorSettings, get_settings
from market_aggregator.telemetry.dal import record_attempt, start_attempt_span, start_call_span
from market_aggregator.utils.http import http_get as default_http_get

T = TypeVar("T")

HttpGet = Callable[..., Tuple[int, Any]]

# Errors a buggy payload can still surface from a normalizer.
_PARSE_ERRORS = (TypeError, ValueError, KeyError, AttributeError, IndexError)


def _is_blank(payload: Any) -> bool:
    return payload is None or (isinstance(payload, (dict, list)) and not payload)


def _in_window(ts_ms: int, start_ms: Optional[int], end_ms: Optional[int]) -> bool:
    return (start_ms is None or ts_ms >= start_ms) and (end_ms is None or ts_ms <= end_ms)


class AggregationService:
    """Canonical market data interface over several upstream providers.

    Each logical call checks the cache, then walks the selector's fallback
    sequence one provider at a time (rate limited, fetched, normalized) and
    returns the first non-empty result. The instance owns its caches, rate
    limiter state and HTTP session; share it by reference.
    """

    def __init__(
        self,
        *,
        settings: Optional[AggregatorSettings] = None,
        registry: Optional[ProviderRegistry] = None,
        plugins: Optional[Mapping[str, ProviderPlugin]] = None,
        selector: Optional[ProviderSelector] = None,
        rate_limiter: Optional[RateLimiter] = None,
        http_get: HttpGet = default_http_get,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        start_sweeper: bool = True,
    ) -> None:
        self.settings = settings or get_settings()
        self.registry = registry or self._default_registry()
        self.plugins: Dict[str, ProviderPlugin] = dict(
            plugins if plugins is not None else build_plugins(self.registry, self.settings.credentials)
        )
        self.selector = selector or ProviderSelector(self.registry, self.settings.selection.preferences())
        self.rate_limiter = rate_limiter or RateLimiter.from_registry(self.registry)

        cache_cfg = self.settings.cache
        self.include_limit_in_key = cache_cfg.include_limit_in_key
        self.quote_cache: TTLCache[str, TickData] = TTLCache(cache_cfg.quote_ttl_secs, name="quotes", clock=clock)
        self.candle_cache: TTLCache[CandleKey, Tuple[int, Tuple[CandleData, ...]]] = TTLCache(
            cache_cfg.candle_ttl_secs, name="candles", clock=clock
        )
        self._sweeper = CacheSweeper((self.quote_cache, self.candle_cache), cache_cfg.sweep_interval_secs)
        if start_sweeper:
            self._sweeper.start()

        self._http_get = http_get
        self._owns_session = session is None
        self._session = session if session is not None else requests.Session()
        self.timeout = timeout

    def _default_registry(self) -> ProviderRegistry:
        overrides = self.settings.selection.min_spacing_ms()
        unknown = [pid for pid in overrides if pid not in DEFAULT_REGISTRY]
        if unknown:
            logger.warning("[dal] ignoring spacing overrides for unknown providers={}", unknown)
        known = {pid: ms for pid, ms in overrides.items() if pid in DEFAULT_REGISTRY}
        return DEFAULT_REGISTRY.with_spacing(known) if known else DEFAULT_REGISTRY

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def get_candles(
        self,
        symbol: str,
        interval: str = "1d",
        limit: int = 100,
        *,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        preferred_provider: Optional[str] = None,
    ) -> List[CandleData]:
        if interval not in CANONICAL_INTERVALS:
            raise ValueError(f"unsupported interval {interval!r}; expected one of {CANONICAL_INTERVALS}")
        if int(limit) <= 0:
            raise ValueError("limit must be positive")
        limit = int(limit)
        sym = normalize_symbol(symbol)

        start_ms, end_ms = to_epoch_ms(start), to_epoch_ms(end)
        key = candle_key(
            sym,
            interval,
            limit,
            start_ms,
            end_ms,
            include_limit=self.include_limit_in_key,
        )
        cached = self.candle_cache.get(key)
        if cached is not None and cached[0] < limit:
            logger.debug("[dal] cached candles too short symbol={} fetched={} limit={}", sym, cached[0], limit)
            cached = None
        if cached is not None:
            logger.debug("[dal] candles cache hit symbol={} interval={} limit={}", sym, interval, limit)
            return list(cached[1][-limit:])

        candidates = self._candidates(sym, DataType.CANDLES, preferred_provider)
        request = FetchRequest(symbol=sym, interval=interval, limit=limit, start=start, end=end)

        def fetch(plugin: ProviderPlugin) -> List[CandleData]:
            raw = self._request(plugin, plugin.candle_call(request))
            candles = self._normalize(plugin, raw, lambda: plugin.normalize_candles(raw, sym, interval))
            candles = [c for c in candles if _in_window(c.timestamp_ms, start_ms, end_ms)]
            return candles[-limit:]

        with start_call_span("get_candles", sym):
            candles = self._run("get_candles", sym, candidates, fetch)
        self.candle_cache.set(key, (limit, tuple(candles)))
        logger.info(
            "[dal] candles symbol={} interval={} count={} source={}",
            sym,
            interval,
            len(candles),
            candles[0].source,
        )
        return candles

    def get_quote(self, symbol: str, *, preferred_provider: Optional[str] = None) -> TickData:
        sym = normalize_symbol(symbol)
        cached = self.quote_cache.get(sym)
        if cached is not None:
            logger.debug("[dal] quote cache hit symbol={}", sym)
            return cached

        candidates = self._candidates(sym, DataType.QUOTE, preferred_provider)

        def fetch(plugin: ProviderPlugin) -> Optional[TickData]:
            raw = self._request(plugin, plugin.quote_call(sym))
            return self._normalize(plugin, raw, lambda: plugin.normalize_tick(raw, sym))

        with start_call_span("get_quote", sym):
            tick = self._run("get_quote", sym, candidates, fetch)
        self.quote_cache.set(sym, tick)
        logger.info("[dal] quote symbol={} price={} source={}", sym, tick.price, tick.source)
        return tick

    def search_symbols(self, query: str) -> List[SymbolInfo]:
        """Best-effort union of every search-capable provider, first hit per symbol wins."""
        text = (query or "").strip()
        if not text:
            return []

        results: Dict[str, SymbolInfo] = {}
        with start_call_span("search_symbols", text):
            for plugin in self._candidates(text, DataType.SEARCH, None):
                with start_attempt_span("search_symbols", plugin.name):
                    try:
                        raw = self._request(plugin, plugin.search_call(text))
                        matches = self._normalize(plugin, raw, lambda: plugin.normalize_search(raw, text))
                    except SOFT_ERRORS as exc:
                        logger.debug("[dal] search skipped provider={} reason={}", plugin.name, exc)
                        continue
                for info in matches:
                    results.setdefault(info.symbol.upper(), info)
        return list(results.values())

    def get_order_book(self, symbol: str) -> Any:
        raise UnsupportedOperationError(f"order book data for {symbol} is not offered by any registered provider")

    def subscribe(self, symbol: str, callback: Optional[Callable[[TickData], None]] = None) -> Any:
        raise UnsupportedOperationError("real-time subscriptions are not supported; providers are REST-only")

    def stream_candles(self, symbols: Iterable[str], interval: str = "1m") -> Any:
        raise UnsupportedOperationError("candle streaming is not supported; providers are REST-only")

    def invalidate(self, symbol: Optional[str] = None) -> int:
        """Drop cached quotes and candles for ``symbol`` (or everything)."""
        if symbol is None:
            return self.quote_cache.invalidate() + self.candle_cache.invalidate()
        sym = normalize_symbol(symbol)
        return self.quote_cache.invalidate(lambda key: key == sym) + self.candle_cache.invalidate(
            lambda key: key[0] == sym
        )

    def close(self) -> None:
        self._sweeper.stop()
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> "AggregationService":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _candidates(
        self,
        symbol: str,
        data_type: DataType,
        preferred_provider: Optional[str],
    ) -> List[ProviderPlugin]:
        sequence = self.selector.select_sequence(symbol, data_type, preferred_provider)
        asset_class = classify(symbol)

        if preferred_provider is not None:
            preferred = self.plugins.get(preferred_provider)
            if preferred is not None and not preferred.has_credentials():
                raise ConfigurationError(f"provider {preferred_provider} requires an API key that is not configured")

        candidates: List[ProviderPlugin] = []
        missing_credentials: List[str] = []
        for provider_id in sequence:
            plugin = self.plugins.get(provider_id)
            if plugin is None:
                continue
            descriptor = plugin.descriptor
            if data_type is DataType.SEARCH:
                if not descriptor.supports_search:
                    continue
            elif not descriptor.serves(asset_class):
                continue
            if not plugin.has_credentials():
                missing_credentials.append(provider_id)
                continue
            candidates.append(plugin)

        if candidates:
            return candidates
        if missing_credentials:
            raise ConfigurationError(
                f"no credentials configured for providers able to serve {data_type.value} "
                f"for {symbol}: {', '.join(missing_credentials)}"
            )
        raise UnsupportedOperationError(f"no registered provider offers {data_type.value} for {symbol}")

    def _request(self, plugin: ProviderPlugin, call: HttpCall) -> Any:
        with self.rate_limiter.slot(plugin.name):
            status, payload = self._http_get(
                call.url,
                params=call.params,
                headers=call.headers,
                timeout=self.timeout,
                session=self._session,
            )
        if not 200 <= int(status) < 300:
            raise ProviderRequestError(plugin.name, f"HTTP {status}", status=int(status))
        return payload

    def _normalize(self, plugin: ProviderPlugin, raw: Any, convert: Callable[[], T]) -> T:
        try:
            result = convert()
        except _PARSE_ERRORS as exc:
            raise NormalizationError(plugin.name, f"unparseable payload: {exc}") from exc
        if not result and not _is_blank(raw):
            raise NormalizationError(plugin.name, "payload yielded no usable records")
        return result

    def _run(
        self,
        operation: str,
        symbol: str,
        candidates: Sequence[ProviderPlugin],
        fetch: Callable[[ProviderPlugin], Optional[T]],
    ) -> T:
        attempts: List[AttemptRecord] = []
        for plugin in candidates:
            with start_attempt_span(operation, plugin.name, {"dal.symbol": symbol}) as span:
                try:
                    result = fetch(plugin)
                except SOFT_ERRORS as exc:
                    outcome = (
                        AttemptOutcome.REQUEST_FAILED
                        if isinstance(exc, ProviderRequestError)
                        else AttemptOutcome.NORMALIZATION_FAILED
                    )
                    attempts.append(AttemptRecord(plugin.name, outcome, str(exc)))
                else:
                    if result:
                        span.set_attribute("dal.outcome", "ok")
                        record_attempt(plugin.name, "ok")
                        return result
                    outcome = AttemptOutcome.EMPTY
                    attempts.append(AttemptRecord(plugin.name, outcome, "no data returned"))
                span.set_attribute("dal.outcome", outcome.value)
                record_attempt(plugin.name, outcome.value)
            logger.warning(
                "[dal] {} fallback provider={} symbol={} outcome={} detail={}",
                operation,
                plugin.name,
                symbol,
                attempts[-1].outcome.value,
                attempts[-1].message,
            )

        error = AllProvidersFailedError(operation, symbol, attempts)
        logger.error("[dal] {}", error)
        raise error


__all__ = ["AggregationService"]
