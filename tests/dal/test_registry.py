from __future__ import annotations

import pytest

from market_aggregator.core.exceptions import UnknownProviderError
from market_aggregator.dal.registry import DEFAULT_REGISTRY, ProviderDescriptor, ProviderRegistry
from market_aggregator.dal.schemas import CANONICAL_INTERVALS, AssetClass


def test_registry_order_and_lookup():
    assert DEFAULT_REGISTRY.ids() == ("binance", "twelve_data", "alpha_vantage", "yh_finance", "oanda")
    binance = DEFAULT_REGISTRY.lookup("binance")
    assert binance.requires_api_key is False
    assert binance.url == "https://api.binance.com"
    assert DEFAULT_REGISTRY.lookup("twelve_data").min_spacing_ms == 7_500


def test_lookup_unknown_provider():
    with pytest.raises(UnknownProviderError) as excinfo:
        DEFAULT_REGISTRY.lookup("bloomberg")
    assert excinfo.value.provider_id == "bloomberg"


def test_default_interval_is_declared_in_table():
    for descriptor in DEFAULT_REGISTRY.all():
        assert descriptor.default_interval in descriptor.interval_map.values()
        assert set(descriptor.supported_intervals) <= set(CANONICAL_INTERVALS)


def test_descriptors_are_read_only():
    descriptor = DEFAULT_REGISTRY.lookup("oanda")
    with pytest.raises(AttributeError):
        descriptor.min_spacing_ms = 1  # type: ignore[misc]
    with pytest.raises(TypeError):
        descriptor.interval_map["1h"] = "H2"  # type: ignore[index]


def test_serves_unknown_asset_class():
    oanda = DEFAULT_REGISTRY.lookup("oanda")
    assert oanda.serves(AssetClass.FOREX)
    assert not oanda.serves(AssetClass.CRYPTO)
    assert oanda.serves(AssetClass.UNKNOWN)


def test_with_spacing_overrides():
    registry = DEFAULT_REGISTRY.with_spacing({"binance": 1_000})
    assert registry.lookup("binance").min_spacing_ms == 1_000
    assert DEFAULT_REGISTRY.lookup("binance").min_spacing_ms == 250
    with pytest.raises(UnknownProviderError):
        DEFAULT_REGISTRY.with_spacing({"nope": 1})


def test_duplicate_ids_rejected():
    descriptor = DEFAULT_REGISTRY.lookup("binance")
    with pytest.raises(ValueError):
        ProviderRegistry([descriptor, descriptor])


def test_custom_registry():
    descriptor = ProviderDescriptor(
        id="local",
        host="localhost",
        supported_asset_classes=frozenset({AssetClass.STOCK}),
        interval_map={"1d": "D"},
        default_interval="D",
        min_spacing_ms=0,
        requires_api_key=False,
    )
    registry = ProviderRegistry([descriptor])
    assert len(registry) == 1
    assert "local" in registry
    assert registry.all() == (descriptor,)
