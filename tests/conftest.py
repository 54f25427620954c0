from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple

import pytest

from market_aggregator.logging_utils import setup_test_logging

os.environ.setdefault("ENV", "test")

_PROVIDER_ENV = (
    "RAPID_API_KEY",
    "OANDA_API_KEY",
    "QUOTE_CACHE_TTL_SECS",
    "CANDLE_CACHE_TTL_SECS",
    "CACHE_SWEEP_INTERVAL_SECS",
    "CACHE_KEY_INCLUDE_LIMIT",
    "PROVIDER_PREFERENCE_CRYPTO",
    "PROVIDER_PREFERENCE_FOREX",
    "PROVIDER_PREFERENCE_STOCK",
    "PROVIDER_MIN_SPACING_MS",
)


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    setup_test_logging(Path("market-aggregator-logs/"))
    yield


@pytest.fixture(autouse=True)
def _isolate_provider_env(monkeypatch):
    """Keep developer credentials and overrides out of unit tests."""
    for key in _PROVIDER_ENV:
        monkeypatch.delenv(key, raising=False)


class FakeHttp:
    """Records GET calls and answers from a per-host table of (status, payload)."""

    def __init__(self, routes: Dict[str, Any]) -> None:
        self.routes = routes
        self.calls: List[Tuple[str, Dict[str, Any], Dict[str, str]]] = []

    def __call__(self, url, params=None, headers=None, **kwargs):
        self.calls.append((url, dict(params or {}), dict(headers or {})))
        for prefix, answer in self.routes.items():
            if url.startswith(prefix):
                return answer(url, params or {}) if callable(answer) else answer
        return 599, {}

    def hosts(self) -> List[str]:
        return [url.split("/")[2] for url, _, _ in self.calls]


@pytest.fixture
def fake_http() -> Callable[[Dict[str, Any]], FakeHttp]:
    return FakeHttp
