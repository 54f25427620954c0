"""Centralized aggregator settings powered by Pydantic.

Environment matrix:

| Section     | Environment Variable           | Default                                  | Purpose                                   |
|-------------|--------------------------------|------------------------------------------|-------------------------------------------|
| Credentials | `RAPID_API_KEY`                | `None`                                   | Key for RapidAPI-hosted providers         |
| Credentials | `OANDA_API_KEY`                | `None`                                   | OANDA v20 bearer token                    |
| Cache       | `QUOTE_CACHE_TTL_SECS`         | `30`                                     | Quote cache time-to-live                  |
| Cache       | `CANDLE_CACHE_TTL_SECS`        | `300`                                    | Candle cache time-to-live                 |
| Cache       | `CACHE_SWEEP_INTERVAL_SECS`    | `60`                                     | Background purge cadence (0 disables)     |
| Cache       | `CACHE_KEY_INCLUDE_LIMIT`      | `true`                                   | Whether `limit` is part of candle keys    |
| Selection   | `PROVIDER_PREFERENCE_CRYPTO`   | `binance,twelve_data,alpha_vantage`      | Initial order for crypto symbols          |
| Selection   | `PROVIDER_PREFERENCE_FOREX`    | `twelve_data,alpha_vantage,oanda`        | Initial order for forex symbols           |
| Selection   | `PROVIDER_PREFERENCE_STOCK`    | `twelve_data,yh_finance,alpha_vantage`   | Initial order for equities                |
| Limits      | `PROVIDER_MIN_SPACING_MS`      | `None`                                   | `id=ms` overrides of request spacing      |

Settings are read-only once built; construct a new instance to pick up
environment changes.
"""

from __future__ import annotations

from typing import Dict, Tuple

from pydantic import BaseModel, Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from market_aggregator.dal.schemas import AssetClass


class _SettingsBase(BaseSettings):
    """Common configuration for BaseSettings subclasses."""

    model_config = SettingsConfigDict(
        env_prefix="",
        populate_by_name=True,
        extra="ignore",
        case_sensitive=True,
        frozen=True,
    )


def _split_csv(value: str | None) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip().lower() for part in value.split(",") if part.strip())


class CredentialSettings(_SettingsBase):
    """API credentials for upstream market data providers."""

    rapidapi_key: str | None = Field(default=None, alias="RAPID_API_KEY")
    oanda_key: str | None = Field(default=None, alias="OANDA_API_KEY")

    @computed_field
    @property
    def has_rapidapi(self) -> bool:
        return bool(self.rapidapi_key)

    @computed_field
    @property
    def has_oanda(self) -> bool:
        return bool(self.oanda_key)


class CacheSettings(_SettingsBase):
    """TTL cache configuration."""

    quote_ttl_secs: float = Field(default=30.0, alias="QUOTE_CACHE_TTL_SECS")
    candle_ttl_secs: float = Field(default=300.0, alias="CANDLE_CACHE_TTL_SECS")
    sweep_interval_secs: float = Field(default=60.0, alias="CACHE_SWEEP_INTERVAL_SECS")
    include_limit_in_key: bool = Field(default=True, alias="CACHE_KEY_INCLUDE_LIMIT")

    @field_validator("quote_ttl_secs", "candle_ttl_secs", "sweep_interval_secs")
    @classmethod
    def _non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("cache durations must be >= 0")
        return value


class SelectionSettings(_SettingsBase):
    """Provider preference per asset class and request spacing overrides.

    Values stay comma-delimited strings so plain env vars never go through
    JSON decoding; parsed views are exposed through methods.
    """

    crypto_csv: str = Field(
        default="binance,twelve_data,alpha_vantage",
        alias="PROVIDER_PREFERENCE_CRYPTO",
    )
    forex_csv: str = Field(
        default="twelve_data,alpha_vantage,oanda",
        alias="PROVIDER_PREFERENCE_FOREX",
    )
    stock_csv: str = Field(
        default="twelve_data,yh_finance,alpha_vantage",
        alias="PROVIDER_PREFERENCE_STOCK",
    )
    min_spacing_csv: str = Field(default="", alias="PROVIDER_MIN_SPACING_MS")

    def preferences(self) -> Dict[AssetClass, Tuple[str, ...]]:
        return {
            AssetClass.CRYPTO: _split_csv(self.crypto_csv),
            AssetClass.FOREX: _split_csv(self.forex_csv),
            AssetClass.STOCK: _split_csv(self.stock_csv),
        }

    def min_spacing_ms(self) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for token in _split_csv(self.min_spacing_csv):
            if "=" not in token:
                continue
            key, raw = token.split("=", 1)
            try:
                out[key.strip()] = int(raw.strip())
            except ValueError:
                continue
        return out


class AggregatorSettings(BaseModel):
    """Aggregate accessor for domain-specific settings."""

    credentials: CredentialSettings = Field(default_factory=CredentialSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    selection: SelectionSettings = Field(default_factory=SelectionSettings)

    model_config = {
        "frozen": True,
        "arbitrary_types_allowed": True,
    }


def get_settings() -> AggregatorSettings:
    """Instantiate settings from the current environment."""
    return AggregatorSettings()


def get_credential_settings() -> CredentialSettings:
    return get_settings().credentials


__all__ = [
    "AggregatorSettings",
    "CacheSettings",
    "CredentialSettings",
    "SelectionSettings",
    "get_credential_settings",
    "get_settings",
]
