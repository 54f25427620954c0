from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Iterable

from market_aggregator import __version__

# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------


def get_str(name: str, default: str = "") -> str:
    """Return env var as a string with a sensible default."""
    value = os.getenv(name)
    return value if value not in (None, "") else default


def get_float_chain(names: Iterable[str], default: float) -> float:
    """Return the first valid float from a list of env vars."""
    for name in names:
        raw = os.getenv(name)
        if raw is None:
            continue
        candidate = str(raw).strip()
        if not candidate:
            continue
        try:
            return float(candidate)
        except Exception:
            continue
    return default


@dataclass(frozen=True)
class EnvSettings:
    """Process-level knobs sourced from environment variables."""

    #: Deployment environment label attached to log lines.
    ENV: str = field(default_factory=lambda: get_str("ENV", "local"))
    #: Default log level for loguru sinks.
    LOG_LEVEL: str = field(default_factory=lambda: get_str("LOG_LEVEL", "INFO"))
    #: Per-request HTTP timeout (seconds).
    HTTP_TIMEOUT: float = field(
        default_factory=lambda: get_float_chain(("HTTP_TIMEOUT", "HTTP_TIMEOUT_SECS"), 10.0)
    )
    #: HTTP user-agent header for outbound requests.
    HTTP_USER_AGENT: str = field(
        default_factory=lambda: get_str(
            "HTTP_USER_AGENT", f"market-aggregator/{__version__}"
        )
    )


ENV = EnvSettings()

HTTP_TIMEOUT = ENV.HTTP_TIMEOUT
HTTP_USER_AGENT = ENV.HTTP_USER_AGENT
