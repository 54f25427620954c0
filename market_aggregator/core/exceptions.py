from __future__ import annotations

from typing import TYPE_CHECKING, Sequence, Tuple

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from market_aggregator.dal.results import AttemptRecord


class AggregationError(Exception):
    """Base class for all market aggregator exceptions."""


class ConfigurationError(AggregationError):
    """Raised when a required provider credential is missing."""


class UnknownProviderError(AggregationError):
    """Raised when a provider id is not present in the registry."""

    def __init__(self, provider_id: str) -> None:
        super().__init__(f"unknown provider: {provider_id}")
        self.provider_id = provider_id


class UnsupportedOperationError(AggregationError):
    """Raised for capabilities no registered provider offers."""


class ProviderRequestError(AggregationError):
    """Raised when a single provider request fails at the transport/HTTP level."""

    def __init__(self, provider_id: str, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.provider_id = provider_id
        self.status = status


class NormalizationError(AggregationError):
    """Raised when a provider payload yields no usable records."""

    def __init__(self, provider_id: str, message: str) -> None:
        super().__init__(message)
        self.provider_id = provider_id


class AllProvidersFailedError(AggregationError):
    """Raised once every candidate provider has been attempted without success."""

    def __init__(self, operation: str, symbol: str, attempts: Sequence["AttemptRecord"]) -> None:
        self.operation = operation
        self.symbol = symbol
        self.attempts: Tuple["AttemptRecord", ...] = tuple(attempts)
        super().__init__(self._render())

    @property
    def providers(self) -> Tuple[str, ...]:
        return tuple(record.provider_id for record in self.attempts)

    def _render(self) -> str:
        if not self.attempts:
            return f"{self.operation} failed for {self.symbol}: no provider attempted"
        detail = "; ".join(
            f"{rec.provider_id}={rec.outcome.value}({rec.message})" for rec in self.attempts
        )
        return (
            f"{self.operation} failed for {self.symbol} after "
            f"{len(self.attempts)} attempts: {detail}"
        )


# Soft errors are absorbed by the fallback loop; the rest reach callers.
SOFT_ERRORS = (ProviderRequestError, NormalizationError)


__all__ = [
    "AggregationError",
    "ConfigurationError",
    "UnknownProviderError",
    "UnsupportedOperationError",
    "ProviderRequestError",
    "NormalizationError",
    "AllProvidersFailedError",
    "SOFT_ERRORS",
]
