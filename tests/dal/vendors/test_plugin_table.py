from __future__ import annotations

import pytest

from market_aggregator.core.exceptions import UnknownProviderError
from market_aggregator.dal.registry import DEFAULT_REGISTRY
from market_aggregator.dal.vendors import PLUGIN_TYPES, build_plugins, get_plugin
from market_aggregator.dal.vendors.base import safe_float
from market_aggregator.settings import CredentialSettings


def test_every_registered_provider_has_a_plugin():
    assert set(PLUGIN_TYPES) == set(DEFAULT_REGISTRY.ids())


def test_build_plugins_wires_credentials():
    plugins = build_plugins(credentials=CredentialSettings(RAPID_API_KEY="rk", OANDA_API_KEY="tok"))
    assert list(plugins) == list(DEFAULT_REGISTRY.ids())
    assert plugins["binance"].has_credentials()
    assert plugins["yh_finance"].auth_headers()["X-RapidAPI-Host"] == "yh-finance.p.rapidapi.com"
    assert plugins["oanda"].auth_headers() == {"Authorization": "Bearer tok"}


def test_missing_credentials_are_reported():
    plugins = build_plugins(credentials=CredentialSettings())
    assert [pid for pid, plugin in plugins.items() if not plugin.has_credentials()] == [
        "twelve_data",
        "alpha_vantage",
        "yh_finance",
        "oanda",
    ]


def test_get_plugin_unknown_id():
    with pytest.raises(UnknownProviderError):
        get_plugin("polygon")


@pytest.mark.parametrize(
    "value, expected",
    [("1.5", 1.5), (2, 2.0), ("", None), (None, None), ("abc", None), ("nan", None), (True, None)],
)
def test_safe_float(value, expected):
    assert safe_float(value) == expected
