"""Telemetry helpers for the aggregation facade."""

from __future__ import annotations

from typing import Any, Dict

from opentelemetry import trace
from opentelemetry.metrics import get_meter

_tracer = trace.get_tracer(__name__)
_meter = get_meter(__name__)

_attempt_counter = _meter.create_counter(
    name="dal_provider_attempts_total",
    unit="1",
    description="Provider attempts by outcome",
)


def start_call_span(operation: str, symbol: str):
    return _tracer.start_as_current_span(
        f"dal.{operation}", attributes={"dal.operation": operation, "dal.symbol": symbol}
    )


def start_attempt_span(operation: str, provider_id: str, attributes: Dict[str, Any] | None = None):
    attrs: Dict[str, Any] = {"dal.operation": operation, "dal.provider": provider_id}
    if attributes:
        attrs.update(attributes)
    return _tracer.start_as_current_span("dal.provider_attempt", attributes=attrs)


def record_attempt(provider_id: str, outcome: str) -> None:
    _attempt_counter.add(1, attributes={"dal.provider": provider_id, "dal.outcome": outcome})


__all__ = ["record_attempt", "start_attempt_span", "start_call_span"]
