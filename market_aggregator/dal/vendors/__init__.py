"""Provider plugin table and the mapper entry points."""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Type

from market_aggregator.core.exceptions import UnknownProviderError
from market_aggregator.dal.registry import DEFAULT_REGISTRY, ProviderRegistry
from market_aggregator.settings import CredentialSettings

from .base import FetchRequest, HttpCall, ProviderPlugin
from .market_data import (
    AlphaVantagePlugin,
    BinancePlugin,
    OandaPlugin,
    TwelveDataPlugin,
    YahooFinancePlugin,
)

PLUGIN_TYPES: Mapping[str, Type[ProviderPlugin]] = {
    "binance": BinancePlugin,
    "twelve_data": TwelveDataPlugin,
    "alpha_vantage": AlphaVantagePlugin,
    "yh_finance": YahooFinancePlugin,
    "oanda": OandaPlugin,
}


def _api_key(credential: Optional[str], credentials: Optional[CredentialSettings]) -> Optional[str]:
    if credentials is None or credential is None:
        return None
    if credential == "rapidapi":
        return credentials.rapidapi_key
    if credential == "oanda":
        return credentials.oanda_key
    return None


def get_plugin(
    provider_id: str,
    registry: ProviderRegistry = DEFAULT_REGISTRY,
    credentials: Optional[CredentialSettings] = None,
) -> ProviderPlugin:
    descriptor = registry.lookup(provider_id)
    plugin_cls = PLUGIN_TYPES.get(provider_id)
    if plugin_cls is None:
        raise UnknownProviderError(provider_id)
    return plugin_cls(descriptor, api_key=_api_key(descriptor.credential, credentials))


def build_plugins(
    registry: ProviderRegistry = DEFAULT_REGISTRY,
    credentials: Optional[CredentialSettings] = None,
) -> Dict[str, ProviderPlugin]:
    """Instantiate one plugin per registered provider, in registry order."""
    return {provider_id: get_plugin(provider_id, registry, credentials) for provider_id in registry.ids()}


def map_symbol(symbol: str, provider_id: str, registry: ProviderRegistry = DEFAULT_REGISTRY) -> str:
    return get_plugin(provider_id, registry).map_symbol(symbol)


def map_interval(interval: str, provider_id: str, registry: ProviderRegistry = DEFAULT_REGISTRY) -> str:
    return get_plugin(provider_id, registry).map_interval(interval)


__all__ = [
    "AlphaVantagePlugin",
    "BinancePlugin",
    "FetchRequest",
    "HttpCall",
    "OandaPlugin",
    "PLUGIN_TYPES",
    "ProviderPlugin",
    "TwelveDataPlugin",
    "YahooFinancePlugin",
    "build_plugins",
    "get_plugin",
    "map_interval",
    "map_symbol",
]
