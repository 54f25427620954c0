from __future__ import annotations

from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from market_aggregator.dal.registry import DEFAULT_REGISTRY, ProviderRegistry
from market_aggregator.dal.schemas import AssetClass, DataType
from market_aggregator.dal.symbols import classify

DEFAULT_PREFERENCES: Mapping[AssetClass, Tuple[str, ...]] = MappingProxyType(
    {
        AssetClass.CRYPTO: ("binance", "twelve_data", "alpha_vantage"),
        AssetClass.FOREX: ("twelve_data", "alpha_vantage", "oanda"),
        AssetClass.STOCK: ("twelve_data", "yh_finance", "alpha_vantage"),
    }
)


class ProviderSelector:
    """Deterministic fallback order: preferred, then asset-class list, then registry order.

    Preference ids that are not registered are ignored so a stale
    configuration never breaks selection.
    """

    def __init__(
        self,
        registry: ProviderRegistry = DEFAULT_REGISTRY,
        preferences: Optional[Mapping[AssetClass, Sequence[str]]] = None,
    ) -> None:
        self.registry = registry
        source = DEFAULT_PREFERENCES if preferences is None else preferences
        self._preferences: Dict[AssetClass, Tuple[str, ...]] = {
            asset_class: tuple(ids) for asset_class, ids in source.items()
        }

    def preference(self, asset_class: AssetClass) -> Tuple[str, ...]:
        return self._preferences.get(asset_class, ())

    def select_sequence(
        self,
        symbol: str,
        data_type: DataType = DataType.CANDLES,
        preferred_provider_id: Optional[str] = None,
    ) -> List[str]:
        ordered: List[str] = []
        if preferred_provider_id is not None:
            self.registry.lookup(preferred_provider_id)
            ordered.append(preferred_provider_id)

        for provider_id in self.preference(classify(symbol)):
            if provider_id in self.registry and provider_id not in ordered:
                ordered.append(provider_id)

        for provider_id in self.registry.ids():
            if provider_id not in ordered:
                ordered.append(provider_id)
        return ordered


__all__ = ["DEFAULT_PREFERENCES", "ProviderSelector"]
