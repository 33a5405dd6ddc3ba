"""HTTP client wrapper around httpx."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from sitepatch.errors import (
    OracleHTTPError,
    OracleOutputError,
    OracleTimeoutError,
    OracleTransportError,
)


@dataclass(frozen=True)
class HttpResponse:
    """Parsed HTTP response."""

    status_code: int
    body: dict[str, Any]
    headers: dict[str, str]
    raw_text: str = ""


class HttpClient:
    """Thin wrapper around :mod:`httpx` that maps errors into oracle exceptions.

    ``transport`` is handed straight to :class:`httpx.Client`; tests pass an
    :class:`httpx.MockTransport` there.
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str],
        timeout: float = 90.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 10.0)),
            transport=transport,
        )

    def post(
        self,
        path: str,
        json: dict[str, Any],
        *,
        timeout: float | None = None,
        model: str = "",
    ) -> HttpResponse:
        """Send a POST request and return the parsed JSON response.

        Raises an :class:`~sitepatch.errors.OracleError` subclass on timeout,
        transport failure, non-2xx status or a body that is not a JSON object.
        """
        kwargs: dict[str, Any] = {"json": json}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = self._client.post(path, **kwargs)
        except httpx.TimeoutException as exc:
            raise OracleTimeoutError(f"request timed out: {exc}", model=model, cause=exc) from exc
        except httpx.TransportError as exc:
            raise OracleTransportError(str(exc) or type(exc).__name__, model=model, cause=exc) from exc

        raw_text = resp.text
        hdrs = dict(resp.headers)

        if resp.status_code >= 300:
            try:
                body = resp.json()
            except ValueError:
                body = {}
            msg = raw_text
            if isinstance(body, dict) and isinstance(body.get("error"), dict):
                msg = body["error"].get("message", raw_text)
            raise OracleHTTPError(
                f"HTTP {resp.status_code}: {msg[:400]}",
                status_code=resp.status_code,
                model=model,
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise OracleOutputError(
                f"response body is not JSON: {raw_text[:400]}", model=model, cause=exc
            ) from exc
        if not isinstance(body, dict):
            raise OracleOutputError("response body is not a JSON object", model=model)

        return HttpResponse(
            status_code=resp.status_code,
            body=body,
            headers=hdrs,
            raw_text=raw_text,
        )

    def close(self) -> None:
        """Close the underlying httpx client."""
        self._client.close()
