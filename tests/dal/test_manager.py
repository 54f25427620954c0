from __future__ import annotations

from datetime import datetime, timezone

import pytest

from market_aggregator.core.exceptions import (
    AllProvidersFailedError,
    ConfigurationError,
    UnknownProviderError,
    UnsupportedOperationError,
)
from market_aggregator.dal.manager import AggregationService
from market_aggregator.dal.ratelimit import RateLimiter
from market_aggregator.dal.registry import ProviderDescriptor, ProviderRegistry
from market_aggregator.dal.results import AttemptOutcome
from market_aggregator.dal.schemas import AssetClass
from market_aggregator.dal.vendors.market_data.binance import BinancePlugin
from market_aggregator.settings import AggregatorSettings, CacheSettings, CredentialSettings

IDENTITY = {"1m": "1m", "1h": "1h", "1d": "1d"}

KLINES = [
    [1704067200000, "100", "110", "95", "105", "10"],
    [1704153600000, "105", "112", "101", "111", "12"],
    [1704240000000, "111", "115", "108", "109", "8"],
]


def _descriptor(provider_id: str) -> ProviderDescriptor:
    return ProviderDescriptor(
        id=provider_id,
        host=f"{provider_id.lower()}.example",
        supported_asset_classes=frozenset({AssetClass.CRYPTO}),
        interval_map=IDENTITY,
        default_interval="1d",
        min_spacing_ms=0,
        requires_api_key=False,
        supports_search=True,
    )


class ManualClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _service(http, ids=("A", "B", "C"), clock=None, include_limit=True) -> AggregationService:
    registry = ProviderRegistry(_descriptor(pid) for pid in ids)
    settings = AggregatorSettings(
        cache=CacheSettings(
            quote_ttl_secs=30,
            candle_ttl_secs=300,
            sweep_interval_secs=0,
            include_limit_in_key=include_limit,
        )
    )
    return AggregationService(
        settings=settings,
        registry=registry,
        plugins={pid: BinancePlugin(registry.lookup(pid)) for pid in ids},
        http_get=http,
        clock=clock or ManualClock(),
        start_sweeper=False,
    )


def test_quote_falls_back_past_unreachable_provider(fake_http):
    http = fake_http(
        {
            "https://b.example": (
                200,
                {"lastPrice": "65000.5", "bidPrice": "65000.0", "askPrice": "65001.0"},
            )
        }
    )
    with _service(http, ids=("A", "B")) as service:
        tick = service.get_quote("BTCUSDT")

    assert tick.symbol == "BTCUSDT"
    assert tick.price == 65000.5
    assert tick.bid == 65000.0
    assert tick.ask == 65001.0
    assert tick.source == "B"
    assert http.hosts() == ["a.example", "b.example"]


def test_candles_come_from_first_successful_provider(fake_http):
    http = fake_http(
        {
            "https://a.example": (500, {"msg": "boom"}),
            "https://b.example": (200, []),
            "https://c.example": (200, KLINES),
        }
    )
    service = _service(http)
    candles = service.get_candles("BTCUSDT", "1d", 3)

    assert [c.source for c in candles] == ["C", "C", "C"]
    assert http.hosts() == ["a.example", "b.example", "c.example"]
    timestamps = [c.timestamp_ms for c in candles]
    assert timestamps == sorted(timestamps)
    for candle in candles:
        assert candle.high >= max(candle.open, candle.close)
        assert candle.low <= min(candle.open, candle.close)


def test_all_failed_carries_ordered_attempt_log(fake_http):
    http = fake_http(
        {
            "https://a.example": (429, {}),
            "https://b.example": (200, []),
            "https://c.example": (200, {"unexpected": "shape"}),
        }
    )
    service = _service(http)
    with pytest.raises(AllProvidersFailedError) as excinfo:
        service.get_candles("BTCUSDT", "1h", 10)

    error = excinfo.value
    assert error.providers == ("A", "B", "C")
    assert [a.outcome for a in error.attempts] == [
        AttemptOutcome.REQUEST_FAILED,
        AttemptOutcome.EMPTY,
        AttemptOutcome.NORMALIZATION_FAILED,
    ]
    assert "HTTP 429" in error.attempts[0].message
    assert "get_candles failed for BTCUSDT after 3 attempts" in str(error)


def test_each_provider_attempted_once_and_fresh_call_restarts(fake_http):
    http = fake_http({})
    service = _service(http)
    for _ in range(2):
        with pytest.raises(AllProvidersFailedError):
            service.get_quote("BTCUSDT")
    assert http.hosts() == ["a.example", "b.example", "c.example"] * 2


def test_candle_cache_is_idempotent_within_ttl(fake_http):
    clock = ManualClock()
    http = fake_http({"https://a.example": (200, KLINES)})
    service = _service(http, clock=clock)

    first = service.get_candles("BTCUSDT", "1d", 3)
    clock.now = 299.0
    second = service.get_candles("btcusdt", "1d", 3)
    assert first == second
    assert len(http.calls) == 1

    clock.now = 300.5
    service.get_candles("BTCUSDT", "1d", 3)
    assert len(http.calls) == 2


def test_cache_key_respects_limit_setting(fake_http):
    http = fake_http({"https://a.example": (200, KLINES)})
    service = _service(http)
    service.get_candles("BTCUSDT", "1d", 3)
    service.get_candles("BTCUSDT", "1d", 2)
    assert len(http.calls) == 2

    http = fake_http({"https://a.example": (200, KLINES)})
    service = _service(http, include_limit=False)
    service.get_candles("BTCUSDT", "1d", 3)
    trimmed = service.get_candles("BTCUSDT", "1d", 2)
    assert len(http.calls) == 1
    assert [c.timestamp_ms for c in trimmed] == [1704153600000, 1704240000000]

    http = fake_http({"https://a.example": (200, KLINES)})
    service = _service(http, include_limit=False)
    assert len(service.get_candles("BTCUSDT", "1d", 1)) == 1
    assert len(service.get_candles("BTCUSDT", "1d", 3)) == 3
    assert len(http.calls) == 2
    assert len(service.get_candles("BTCUSDT", "1d", 2)) == 2
    assert len(http.calls) == 2


def test_time_window_is_part_of_the_key(fake_http):
    http = fake_http({"https://a.example": (200, KLINES)})
    service = _service(http)
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    service.get_candles("BTCUSDT", "1d", 3, start=start)
    service.get_candles("BTCUSDT", "1d", 3)
    assert len(http.calls) == 2
    assert http.calls[0][1]["startTime"] == 1704067200000


def test_candles_outside_the_window_are_dropped(fake_http):
    http = fake_http(
        {
            "https://a.example": (200, KLINES[:1]),
            "https://b.example": (200, KLINES),
        }
    )
    service = _service(http)
    start = datetime(2024, 1, 2, tzinfo=timezone.utc)
    end = datetime(2024, 1, 2, 12, tzinfo=timezone.utc)

    candles = service.get_candles("BTCUSDT", "1d", 10, start=start, end=end)
    assert [(c.timestamp_ms, c.source) for c in candles] == [(1704153600000, "B")]
    assert http.hosts() == ["a.example", "b.example"]

    assert service.get_candles("BTCUSDT", "1d", 10, start=start, end=end) == candles
    assert len(http.calls) == 2


def test_quote_cache_and_invalidate(fake_http):
    http = fake_http({"https://a.example": (200, {"lastPrice": "1.5"})})
    service = _service(http)
    service.get_quote("ETHBTC")
    service.get_quote("ETHBTC")
    assert len(http.calls) == 1
    assert service.invalidate("ethbtc") == 1
    service.get_quote("ETHBTC")
    assert len(http.calls) == 2
    assert service.invalidate() == 1


def test_preferred_provider_is_tried_first(fake_http):
    http = fake_http({"https://c.example": (200, {"lastPrice": "2"})})
    service = _service(http)
    assert service.get_quote("BTCUSDT", preferred_provider="C").source == "C"
    assert http.hosts() == ["c.example"]

    with pytest.raises(UnknownProviderError):
        service.get_quote("ETHUSDT", preferred_provider="Z")


def test_search_unions_and_skips_failures(fake_http):
    http = fake_http(
        {
            "https://a.example": (599, {}),
            "https://b.example": (200, [{"symbol": "BTCUSDT"}, {"symbol": "BTCEUR"}]),
            "https://c.example": (200, [{"symbol": "BTCUSDT"}, {"symbol": "BTCGBP"}]),
        }
    )
    results = _service(http).search_symbols("btc")
    assert [(info.symbol, info.source) for info in results] == [
        ("BTCUSDT", "B"),
        ("BTCEUR", "B"),
        ("BTCGBP", "C"),
    ]
    assert _service(http).search_symbols("   ") == []


def test_unsupported_operations(fake_http):
    service = _service(fake_http({}))
    with pytest.raises(UnsupportedOperationError):
        service.get_order_book("BTCUSDT")
    with pytest.raises(UnsupportedOperationError):
        service.subscribe("BTCUSDT")
    with pytest.raises(UnsupportedOperationError):
        service.stream_candles(["BTCUSDT"])
    # crypto-only registry cannot serve an equity
    with pytest.raises(UnsupportedOperationError):
        service.get_quote("AAPL")


def test_invalid_arguments(fake_http):
    service = _service(fake_http({}))
    with pytest.raises(ValueError):
        service.get_candles("BTCUSDT", "2h", 10)
    with pytest.raises(ValueError):
        service.get_candles("BTCUSDT", "1h", 0)


def test_missing_credentials_raise_before_network(fake_http):
    http = fake_http({})
    service = AggregationService(
        settings=AggregatorSettings(cache=CacheSettings(sweep_interval_secs=0)),
        http_get=http,
        start_sweeper=False,
    )
    with pytest.raises(ConfigurationError):
        service.get_quote("AAPL")
    with pytest.raises(ConfigurationError):
        service.get_quote("BTCUSDT", preferred_provider="twelve_data")
    assert http.calls == []


def test_default_providers_drop_unkeyed_and_incapable(fake_http):
    http = fake_http({})
    service = AggregationService(
        settings=AggregatorSettings(
            credentials=CredentialSettings(RAPID_API_KEY="rk"),
            cache=CacheSettings(sweep_interval_secs=0),
        ),
        rate_limiter=RateLimiter({}),
        http_get=http,
        start_sweeper=False,
    )
    with pytest.raises(AllProvidersFailedError) as excinfo:
        service.get_quote("EUR/USD")
    # binance and yh_finance do not serve forex; oanda has no token
    assert excinfo.value.providers == ("twelve_data", "alpha_vantage")
    assert http.calls[0][2]["X-RapidAPI-Key"] == "rk"
    service.close()
