from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Hashable, Iterable, Optional, Tuple, TypeVar

from loguru import logger

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

CandleKey = Tuple[str, str, Optional[int], Optional[int], Optional[int]]


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    key: Hashable
    payload: V
    inserted_at: float


class TTLCache(Generic[K, V]):
    """Thread-safe TTL store; every read re-checks freshness and evicts stale entries."""

    def __init__(self, ttl_secs: float, *, name: str = "cache", clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = float(ttl_secs)
        self.name = name
        self._clock = clock
        self._entries: Dict[K, CacheEntry[V]] = {}
        self._lock = threading.Lock()

    def _expired(self, entry: CacheEntry[V], now: float) -> bool:
        return now - entry.inserted_at >= self.ttl

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry, self._clock()):
                del self._entries[key]
                return None
            return entry.payload

    def set(self, key: K, value: V) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(key=key, payload=value, inserted_at=self._clock())

    def purge(self) -> int:
        """Drop every stale entry; returns how many were removed."""
        with self._lock:
            now = self._clock()
            stale = [key for key, entry in self._entries.items() if self._expired(entry, now)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def invalidate(self, predicate: Optional[Callable[[K], bool]] = None) -> int:
        with self._lock:
            if predicate is None:
                removed = len(self._entries)
                self._entries.clear()
                return removed
            doomed = [key for key in self._entries if predicate(key)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def candle_key(
    symbol: str,
    interval: str,
    limit: int,
    start_ms: Optional[int] = None,
    end_ms: Optional[int] = None,
    *,
    include_limit: bool = True,
) -> CandleKey:
    return (symbol, interval, int(limit) if include_limit else None, start_ms, end_ms)


class CacheSweeper:
    """Daemon thread that periodically purges stale entries to bound memory."""

    def __init__(self, caches: Iterable[TTLCache], interval_secs: float) -> None:
        self._caches = tuple(caches)
        self.interval = float(interval_secs)
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.interval <= 0 or self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="cache-sweeper", daemon=True)
        self._thread.start()

    def sweep(self) -> int:
        removed = sum(cache.purge() for cache in self._caches)
        if removed:
            logger.debug("[cache] sweep removed={}", removed)
        return removed

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.sweep()

    def stop(self, timeout: Optional[float] = 1.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None


__all__ = ["CacheEntry", "CacheSweeper", "CandleKey", "TTLCache", "candle_key"]
