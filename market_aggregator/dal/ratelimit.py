"""Per-provider minimum request spacing shared by every caller in the process."""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, Mapping, Optional

from loguru import logger

from market_aggregator.dal.registry import ProviderRegistry


class RateLimiter:
    """Gate requests so consecutive calls to one provider honour its spacing.

    Each ``acquire`` reserves the next free slot under the lock and then
    sleeps outside it, so concurrent callers queue up one spacing apart
    instead of all waking at the same instant.
    """

    def __init__(
        self,
        spacing_ms: Mapping[str, int],
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._spacing = {pid: max(int(ms), 0) / 1000.0 for pid, ms in spacing_ms.items()}
        self._clock = clock
        self._sleep = sleep
        self._last: Dict[str, float] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_registry(cls, registry: ProviderRegistry, **kwargs) -> "RateLimiter":
        return cls({d.id: d.min_spacing_ms for d in registry.all()}, **kwargs)

    def spacing(self, provider_id: str) -> float:
        return self._spacing.get(provider_id, 0.0)

    def last_request(self, provider_id: str) -> Optional[float]:
        with self._lock:
            return self._last.get(provider_id)

    def acquire(self, provider_id: str) -> float:
        """Block until ``provider_id`` may be called; returns seconds waited."""
        spacing = self.spacing(provider_id)
        with self._lock:
            now = self._clock()
            last = self._last.get(provider_id)
            slot = now if last is None else max(now, last + spacing)
            self._last[provider_id] = slot
        wait = slot - now
        if wait > 0:
            logger.debug("[ratelimit] provider={} wait_ms={:.0f}", provider_id, wait * 1000.0)
            self._sleep(wait)
        return max(wait, 0.0)

    @contextmanager
    def slot(self, provider_id: str) -> Iterator[float]:
        yield self.acquire(provider_id)

    def reset(self) -> None:
        with self._lock:
            self._last.clear()


__all__ = ["RateLimiter"]
