from __future__ import annotations

import logging
from typing import Any, Dict, List

import requests

from market_aggregator.utils import http


class DummyResponse:
    def __init__(self, status: int, payload: Any = None, text: str = "") -> None:
        self.status_code = status
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class DummySession:
    def __init__(self, responses: List[Any]) -> None:
        self.responses = responses
        self.calls: List[Dict[str, Any]] = []

    def request(self, **kwargs):
        self.calls.append(kwargs)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def test_http_get_merges_headers_and_logs(caplog):
    session = DummySession([DummyResponse(200, {"ok": True})])
    caplog.set_level(logging.DEBUG)

    status, data = http.http_get(
        "https://example.com/api",
        params={"q": "x"},
        headers={"X-RapidAPI-Key": "k"},
        timeout=3.0,
        session=session,
    )

    assert (status, data) == (200, {"ok": True})
    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["params"] == {"q": "x"}
    assert call["timeout"] == 3.0
    assert call["headers"]["X-RapidAPI-Key"] == "k"
    assert call["headers"]["User-Agent"].startswith("market-aggregator/")
    assert any("method=GET url=https://example.com/api status=200" in r.getMessage() for r in caplog.records)


def test_single_attempt_on_server_error():
    session = DummySession([DummyResponse(503, {"error": "busy"}), DummyResponse(200, {})])
    status, data = http.http_get("https://example.com/api", session=session)
    assert (status, data) == (503, {"error": "busy"})
    assert len(session.calls) == 1


def test_network_error_maps_to_599():
    session = DummySession([requests.ConnectionError("refused")])
    status, data = http.http_get("https://example.com/api", session=session)
    assert status == http.NETWORK_ERROR_STATUS == 599
    assert data == {}


def test_non_json_body_maps_to_empty_dict():
    session = DummySession([DummyResponse(200, None, text="<html>")])
    assert http.http_get("https://example.com/api", session=session) == (200, {})


def test_auth_header_helpers():
    assert http.rapidapi_headers("k", "h.example") == {"X-RapidAPI-Key": "k", "X-RapidAPI-Host": "h.example"}
    assert http.bearer_headers("t") == {"Authorization": "Bearer t"}
