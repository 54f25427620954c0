from __future__ import annotations

import time
from typing import Any, Dict, Optional, Tuple

import requests
from loguru import logger

from market_aggregator.utils import env as ENV

# Status reported when the request never produced an HTTP response.
NETWORK_ERROR_STATUS = 599

# ------------------------------------------------------------------------------
# Header helpers
# ------------------------------------------------------------------------------


def _ensure_ua(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    merged = {"User-Agent": ENV.HTTP_USER_AGENT, "Accept": "application/json"}
    if headers:
        merged.update(headers)
    return merged


def rapidapi_headers(api_key: str, host: str) -> Dict[str, str]:
    """RapidAPI gateway auth headers for a given upstream host."""
    return {"X-RapidAPI-Key": api_key, "X-RapidAPI-Host": host}


def bearer_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# ------------------------------------------------------------------------------
# Core HTTP (JSON), single attempt
# ------------------------------------------------------------------------------


def _log_http_event(
    *,
    level: str,
    method: str,
    url: str,
    status: int,
    start_time: float,
    note: str = "",
) -> None:
    latency_ms = round((time.perf_counter() - start_time) * 1000.0, 1)
    logger.log(
        level,
        "[http] method={} url={} status={} latency_ms={:.1f} {}",
        method.upper(),
        url,
        status,
        latency_ms,
        note,
    )


def request_json(
    method: str,
    url: str,
    *,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
    session: Optional[requests.Session] = None,
) -> Tuple[int, Any]:
    """Make one HTTP request expecting JSON. Returns (status_code, payload).

    - The payload is whatever the body decodes to (dict or list).
    - On non-JSON responses, returns an empty dict.
    - On network failure, returns (599, {}).
    """
    timeout = timeout if timeout is not None else ENV.HTTP_TIMEOUT
    merged = _ensure_ua(headers)
    client = session or requests

    start_time = time.perf_counter()
    try:
        resp = client.request(
            method=method.upper(),
            url=url,
            params=params or {},
            headers=merged,
            timeout=timeout,
        )
    except requests.RequestException as exc:
        _log_http_event(
            level="WARNING",
            method=method,
            url=url,
            status=NETWORK_ERROR_STATUS,
            start_time=start_time,
            note=f"error={exc}",
        )
        return NETWORK_ERROR_STATUS, {}

    ok = 200 <= resp.status_code < 300
    _log_http_event(
        level="DEBUG" if ok else "WARNING",
        method=method,
        url=url,
        status=resp.status_code,
        start_time=start_time,
        note="ok" if ok else "non-2xx",
    )
    try:
        return resp.status_code, resp.json()
    except ValueError:
        # Truncate body for logging
        body = (resp.text or "")[:400]
        logger.debug("Non-JSON response for {}: {}", url, body)
        return resp.status_code, {}


def http_get(
    url: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    *,
    timeout: Optional[float] = None,
    session: Optional[requests.Session] = None,
) -> Tuple[int, Any]:
    return request_json(
        "GET",
        url,
        params=params,
        headers=headers,
        timeout=timeout,
        session=session,
    )


__all__ = [
    "NETWORK_ERROR_STATUS",
    "bearer_headers",
    "http_get",
    "rapidapi_headers",
    "request_json",
]
