"""Static descriptors of the upstream market data providers."""

from __future__ import annotations

from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Sequence, Tuple

from market_aggregator.core.exceptions import UnknownProviderError
from market_aggregator.dal.schemas import AssetClass


@dataclass(frozen=True, slots=True)
class ProviderDescriptor:
    """Read-only description of one provider.

    ``interval_map`` translates canonical intervals into the provider's
    vocabulary; any canonical interval missing from it maps to
    ``default_interval``. Mapped bars may be narrower or wider than the
    requested interval (Alpha Vantage serves ``4h`` as ``60min``) while the
    returned candles keep the canonical label.
    """

    id: str
    host: str
    supported_asset_classes: FrozenSet[AssetClass]
    interval_map: Mapping[str, str]
    default_interval: str
    min_spacing_ms: int
    requires_api_key: bool
    credential: Optional[str] = None
    supports_search: bool = False
    base_url: str = ""

    @property
    def supported_intervals(self) -> Tuple[str, ...]:
        return tuple(self.interval_map)

    @property
    def url(self) -> str:
        return self.base_url or f"https://{self.host}"

    def serves(self, asset_class: AssetClass) -> bool:
        return asset_class is AssetClass.UNKNOWN or asset_class in self.supported_asset_classes


def _table(entries: Mapping[str, str]) -> Mapping[str, str]:
    return MappingProxyType(dict(entries))


_ALL_CLASSES = frozenset({AssetClass.CRYPTO, AssetClass.FOREX, AssetClass.STOCK})

# Spacing follows the upstream per-minute quotas (e.g. 8/min -> 7.5s).
DEFAULT_DESCRIPTORS: Tuple[ProviderDescriptor, ...] = (
    ProviderDescriptor(
        id="binance",
        host="api.binance.com",
        supported_asset_classes=frozenset({AssetClass.CRYPTO}),
        interval_map=_table(
            {
                "1m": "1m",
                "5m": "5m",
                "15m": "15m",
                "30m": "30m",
                "1h": "1h",
                "4h": "4h",
                "1d": "1d",
                "1w": "1w",
                "1M": "1M",
            }
        ),
        default_interval="1d",
        min_spacing_ms=250,
        requires_api_key=False,
        supports_search=True,
    ),
    ProviderDescriptor(
        id="twelve_data",
        host="twelve-data1.p.rapidapi.com",
        supported_asset_classes=_ALL_CLASSES,
        interval_map=_table(
            {
                "1m": "1min",
                "5m": "5min",
                "15m": "15min",
                "30m": "30min",
                "1h": "1h",
                "4h": "4h",
                "1d": "1day",
                "1w": "1week",
                "1M": "1month",
            }
        ),
        default_interval="1day",
        min_spacing_ms=7_500,
        requires_api_key=True,
        credential="rapidapi",
        supports_search=True,
    ),
    ProviderDescriptor(
        id="alpha_vantage",
        host="alpha-vantage.p.rapidapi.com",
        supported_asset_classes=_ALL_CLASSES,
        interval_map=_table(
            {
                "1m": "1min",
                "5m": "5min",
                "15m": "15min",
                "30m": "30min",
                "1h": "60min",
                "4h": "60min",
                "1d": "daily",
                "1w": "weekly",
                "1M": "monthly",
            }
        ),
        default_interval="daily",
        min_spacing_ms=12_000,
        requires_api_key=True,
        credential="rapidapi",
        supports_search=True,
    ),
    ProviderDescriptor(
        id="yh_finance",
        host="yh-finance.p.rapidapi.com",
        supported_asset_classes=frozenset({AssetClass.STOCK, AssetClass.CRYPTO}),
        interval_map=_table(
            {
                "1m": "1m",
                "5m": "5m",
                "15m": "15m",
                "30m": "30m",
                "1h": "60m",
                "1d": "1d",
                "1w": "1wk",
                "1M": "1mo",
            }
        ),
        default_interval="1d",
        min_spacing_ms=12_000,
        requires_api_key=True,
        credential="rapidapi",
        supports_search=True,
    ),
    ProviderDescriptor(
        id="oanda",
        host="api-fxpractice.oanda.com",
        supported_asset_classes=frozenset({AssetClass.FOREX}),
        interval_map=_table(
            {
                "1m": "M1",
                "5m": "M5",
                "15m": "M15",
                "30m": "M30",
                "1h": "H1",
                "4h": "H4",
                "1d": "D",
                "1w": "W",
                "1M": "M",
            }
        ),
        default_interval="D",
        min_spacing_ms=100,
        requires_api_key=True,
        credential="oanda",
    ),
)


class ProviderRegistry:
    """Ordered, immutable collection of provider descriptors."""

    def __init__(self, descriptors: Iterable[ProviderDescriptor] = DEFAULT_DESCRIPTORS) -> None:
        ordered: Dict[str, ProviderDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.id in ordered:
                raise ValueError(f"duplicate provider id: {descriptor.id}")
            ordered[descriptor.id] = descriptor
        self._descriptors: Mapping[str, ProviderDescriptor] = MappingProxyType(ordered)

    def lookup(self, provider_id: str) -> ProviderDescriptor:
        try:
            return self._descriptors[provider_id]
        except KeyError as exc:
            raise UnknownProviderError(provider_id) from exc

    def all(self) -> Sequence[ProviderDescriptor]:
        return tuple(self._descriptors.values())

    def ids(self) -> Tuple[str, ...]:
        return tuple(self._descriptors)

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    def with_spacing(self, overrides: Mapping[str, int]) -> "ProviderRegistry":
        """Return a registry whose minimum spacing honours ``overrides``."""
        for provider_id in overrides:
            self.lookup(provider_id)
        return ProviderRegistry(
            replace(d, min_spacing_ms=int(overrides[d.id])) if d.id in overrides else d
            for d in self.all()
        )


DEFAULT_REGISTRY = ProviderRegistry()


__all__ = [
    "DEFAULT_DESCRIPTORS",
    "DEFAULT_REGISTRY",
    "ProviderDescriptor",
    "ProviderRegistry",
]
