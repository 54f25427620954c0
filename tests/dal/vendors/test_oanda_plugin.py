from __future__ import annotations

from datetime import datetime, timezone

import pytest

from market_aggregator.core.exceptions import UnsupportedOperationError
from market_aggregator.dal.registry import DEFAULT_REGISTRY
from market_aggregator.dal.vendors.base import FetchRequest
from market_aggregator.dal.vendors.market_data import oanda as oanda_module
from market_aggregator.dal.vendors.market_data.oanda import OandaPlugin


@pytest.fixture
def plugin() -> OandaPlugin:
    return OandaPlugin(DEFAULT_REGISTRY.lookup("oanda"), api_key="token")


def test_candle_call(plugin):
    call = plugin.candle_call(FetchRequest(symbol="EUR/USD", interval="4h", limit=10))
    assert call.url == "https://api-fxpractice.oanda.com/v3/instruments/EUR_USD/candles"
    assert call.params == {"granularity": "H4", "price": "M", "count": 10}
    assert call.headers == {"Authorization": "Bearer token"}


def test_candle_call_window_drops_count(plugin):
    call = plugin.candle_call(
        FetchRequest(
            symbol="GBPJPY",
            interval="1d",
            limit=10,
            start=datetime(2024, 1, 1, tzinfo=timezone.utc),
            end=datetime(2024, 1, 5, tzinfo=timezone.utc),
        )
    )
    assert "count" not in call.params
    assert call.params["from"] == "2024-01-01T00:00:00Z"
    assert call.params["to"] == "2024-01-05T00:00:00Z"


def test_search_is_not_offered(plugin):
    with pytest.raises(UnsupportedOperationError):
        plugin.search_call("EUR")
    assert plugin.normalize_search({"anything": 1}, "EUR") == []


def test_normalize_candles():
    payload = {
        "instrument": "EUR_USD",
        "granularity": "H1",
        "candles": [
            {"complete": True, "volume": 1520, "time": "2024-01-02T10:00:00.000000000Z", "mid": {"o": "1.09410", "h": "1.09520", "l": "1.09380", "c": "1.09450"}},
            {"complete": True, "volume": 1333, "time": "2024-01-02T09:00:00.000000000Z", "mid": {"o": "1.09300", "h": "1.09420", "l": "1.09280", "c": "1.09410"}},
            {"complete": False, "volume": 10, "time": "2024-01-02T11:00:00.000000000Z"},
        ],
    }
    candles = oanda_module.normalize_candles(payload, "EUR/USD", "1h")
    assert len(candles) == 2
    assert candles[0].timestamp_ms == 1704186000000
    assert candles[1].close == 1.0945
    assert candles[1].volume == 1520.0


def test_normalize_tick_from_bid_ask_candle():
    payload = {
        "candles": [
            {
                "time": "2024-01-02T10:00:05.000000000Z",
                "volume": 3,
                "bid": {"c": "1.09440"},
                "ask": {"c": "1.09460"},
                "mid": {"c": "1.09450"},
            }
        ]
    }
    tick = oanda_module.normalize_tick(payload, "EUR/USD")
    assert tick is not None
    assert (tick.price, tick.bid, tick.ask) == (1.0945, 1.0944, 1.0946)


def test_error_payloads():
    assert oanda_module.normalize_candles({"errorMessage": "Invalid value specified for 'instrument'"}, "X", "1h") == []
    assert oanda_module.normalize_tick({"candles": []}, "EUR/USD") is None
