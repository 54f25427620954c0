from __future__ import annotations

import time

from market_aggregator.dal.cache import CacheSweeper, TTLCache, candle_key


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_get_returns_fresh_entry():
    clock = FakeClock()
    cache = TTLCache(10, clock=clock)
    cache.set("AAPL", 1)
    clock.now = 9.99
    assert cache.get("AAPL") == 1


def test_entry_expires_at_ttl_and_is_evicted():
    clock = FakeClock()
    cache = TTLCache(10, clock=clock)
    cache.set("AAPL", 1)
    clock.now = 10.001
    assert cache.get("AAPL") is None
    assert len(cache) == 0


def test_set_overwrites_and_refreshes():
    clock = FakeClock()
    cache = TTLCache(10, clock=clock)
    cache.set("k", "old")
    clock.now = 8
    cache.set("k", "new")
    clock.now = 15
    assert cache.get("k") == "new"


def test_purge_and_invalidate():
    clock = FakeClock()
    cache = TTLCache(10, clock=clock)
    cache.set("a", 1)
    clock.now = 5
    cache.set("b", 2)
    clock.now = 11
    assert cache.purge() == 1
    assert cache.get("b") == 2
    cache.set("c", 3)
    assert cache.invalidate(lambda key: key == "c") == 1
    assert cache.invalidate() == 1
    assert len(cache) == 0


def test_candle_key_limit_is_optional():
    assert candle_key("BTCUSDT", "1h", 50, 1, 2) == ("BTCUSDT", "1h", 50, 1, 2)
    assert candle_key("BTCUSDT", "1h", 50, include_limit=False) == ("BTCUSDT", "1h", None, None, None)


def test_sweeper_purges_in_background():
    cache = TTLCache(0.01)
    cache.set("a", 1)
    sweeper = CacheSweeper([cache], interval_secs=0.02)
    sweeper.start()
    try:
        deadline = time.monotonic() + 2.0
        while len(cache) and time.monotonic() < deadline:
            time.sleep(0.01)
        assert len(cache) == 0
        assert sweeper.running
    finally:
        sweeper.stop()
    assert not sweeper.running


def test_sweeper_disabled_with_zero_interval():
    sweeper = CacheSweeper([TTLCache(1)], interval_secs=0)
    sweeper.start()
    assert not sweeper.running
