from __future__ import annotations

import re
import time
from datetime import datetime, timezone
from typing import Any, Optional

_FRACTION = re.compile(r"\.(\d+)")


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Wall-clock epoch milliseconds."""
    return int(time.time() * 1000)


def to_epoch_ms(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)


def parse_timestamp_ms(value: Any, *, unit: str = "auto") -> Optional[int]:
    """Parse provider timestamps into epoch milliseconds.

    Accepts datetimes, ISO-8601 strings (including RFC3339 with nanosecond
    fractions and a trailing ``Z``), plain ``YYYY-MM-DD`` dates and numeric
    epochs. ``unit`` forces numeric interpretation (``"s"`` or ``"ms"``);
    ``"auto"`` treats values above 1e11 as milliseconds.
    Returns None when the value cannot be interpreted.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return to_epoch_ms(value)
    if isinstance(value, (int, float)):
        return _numeric_to_ms(float(value), unit)

    text = str(value).strip()
    try:
        return _numeric_to_ms(float(text), unit)
    except ValueError:
        pass

    candidate = text.replace("T", " ")
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    # datetime.fromisoformat only understands up to microseconds
    candidate = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), candidate, count=1)
    try:
        dt = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    return to_epoch_ms(dt)


def _numeric_to_ms(num: float, unit: str) -> Optional[int]:
    if num != num or num < 0:  # NaN or negative
        return None
    if unit == "s":
        return int(num * 1000)
    if unit == "ms":
        return int(num)
    return int(num) if num >= 1e11 else int(num * 1000)


__all__ = [
    "now_utc",
    "now_ms",
    "to_epoch_ms",
    "from_epoch_ms",
    "parse_timestamp_ms",
]
