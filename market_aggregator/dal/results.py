from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AttemptOutcome(str, Enum):
    REQUEST_FAILED = "request_failed"
    EMPTY = "empty"
    NORMALIZATION_FAILED = "normalization_failed"


@dataclass(frozen=True, slots=True)
class AttemptRecord:
    """One failed provider attempt within a logical call."""

    provider_id: str
    outcome: AttemptOutcome
    message: str

    def as_dict(self) -> dict:
        return {
            "provider_id": self.provider_id,
            "outcome": self.outcome.value,
            "message": self.message,
        }


__all__ = ["AttemptOutcome", "AttemptRecord"]
