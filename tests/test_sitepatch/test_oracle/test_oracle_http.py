from __future__ import annotations

import httpx
import pytest

from sitepatch.errors import (
    OracleHTTPError,
    OracleOutputError,
    OracleTimeoutError,
    OracleTransportError,
)
from sitepatch.oracle.http import HttpClient


def _client(handler) -> HttpClient:
    return HttpClient(
        base_url="https://api.test",
        headers={"Authorization": "Bearer k"},
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


class TestHttpClient:
    def test_post_returns_parsed_body(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            return httpx.Response(200, json={"ok": True})

        resp = _client(handler).post("/v1/responses", json={"a": 1})
        assert resp.status_code == 200
        assert resp.body == {"ok": True}
        assert seen == {"url": "https://api.test/v1/responses", "auth": "Bearer k"}

    def test_error_status_maps_to_http_error(self):
        def handler(request):
            return httpx.Response(429, json={"error": {"message": "slow down"}})

        with pytest.raises(OracleHTTPError) as exc_info:
            _client(handler).post("/v1/responses", json={}, model="gpt-4o")
        assert exc_info.value.status_code == 429
        assert exc_info.value.model == "gpt-4o"
        assert "slow down" in str(exc_info.value)

    def test_error_status_with_text_body(self):
        def handler(request):
            return httpx.Response(502, text="bad gateway")

        with pytest.raises(OracleHTTPError, match="bad gateway"):
            _client(handler).post("/x", json={})

    def test_non_json_body_maps_to_output_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(OracleOutputError):
            _client(handler).post("/x", json={})

    def test_non_object_body_maps_to_output_error(self):
        def handler(request):
            return httpx.Response(200, json=[1, 2])

        with pytest.raises(OracleOutputError):
            _client(handler).post("/x", json={})

    def test_timeout_maps_to_timeout_error(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        with pytest.raises(OracleTimeoutError) as exc_info:
            _client(handler).post("/x", json={}, model="gpt-5")
        assert isinstance(exc_info.value.cause, httpx.ReadTimeout)
        assert exc_info.value.model == "gpt-5"

    def test_connect_failure_maps_to_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(OracleTransportError, match="refused"):
            _client(handler).post("/x", json={})
