"""Generation oracle backends.

An oracle takes a model name and an :class:`OracleRequest` and returns the
decoded JSON answer. Every failure surfaces as an
:class:`~sitepatch.errors.OracleError` so the worker can move on to the next
model in the chain.
"""
from __future__ import annotations

import copy
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import httpx

from sitepatch.errors import OracleError, OracleOutputError, OracleTransportError
from sitepatch.oracle.http import HttpClient
from sitepatch.oracle.prompts import build_input, schema_for
from sitepatch.oracle.types import OracleRequest

logger = logging.getLogger(__name__)

RESPONSES_PATH = "/v1/responses"


class Oracle(Protocol):
    def generate(self, model: str, request: OracleRequest, *, timeout: float) -> Any: ...


class ResponsesOracle:
    """OpenAI Responses API backend with a JSON-schema output format."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com",
        *,
        timeout: float = 90.0,
        transport: httpx.BaseTransport | None = None,
        temperature: float = 0.4,
    ) -> None:
        self._http = HttpClient(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )
        self._temperature = temperature

    def build_body(self, model: str, request: OracleRequest) -> dict[str, Any]:
        schema = schema_for(request)
        body: dict[str, Any] = {
            "model": model,
            "input": build_input(request),
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": schema["name"],
                    "schema": schema["schema"],
                    "strict": schema["strict"],
                },
            },
        }
        if model.startswith(("gpt-5", "o1", "o3", "o4")):
            # Reasoning models reject a custom temperature.
            body["reasoning"] = {"effort": "medium"}
        elif "mini" not in model:
            body["temperature"] = self._temperature
        return body

    def generate(self, model: str, request: OracleRequest, *, timeout: float) -> Any:
        logger.debug("Requesting %s answer from %s", request.mode, model)
        resp = self._http.post(
            RESPONSES_PATH,
            json=self.build_body(model, request),
            timeout=timeout,
            model=model,
        )
        text = extract_output_text(resp.body)
        if text is None:
            raise OracleOutputError("response carries no output text", model=model)
        try:
            return json.loads(text)
        except ValueError as exc:
            raise OracleOutputError(
                f"model returned non-JSON text: {text[:400]}", model=model, cause=exc
            ) from exc

    def close(self) -> None:
        self._http.close()


def extract_output_text(body: Mapping[str, Any]) -> str | None:
    """Return ``output_text`` or the first ``output[].content[].text``."""
    if isinstance(body.get("output_text"), str):
        return body["output_text"]
    for item in body.get("output") or ():
        if not isinstance(item, dict):
            continue
        for part in item.get("content") or ():
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                return part["text"]
    return None


ScriptedAnswer = Any  # JSON value, an exception, or a callable taking the request


class StubOracle:
    """Scripted oracle for tests and offline runs.

    ``responses`` maps a model name to what that model does: return a JSON
    value, raise an exception, or call a function with the request. Answers
    wrapped with :func:`sequence` are consumed one call at a time.
    Models with no script fail with a transport error.
    """

    def __init__(self, responses: Mapping[str, ScriptedAnswer] | None = None) -> None:
        self._responses: dict[str, Any] = dict(responses or {})
        self.calls: list[tuple[str, OracleRequest]] = []

    def script(self, model: str, answer: ScriptedAnswer) -> None:
        self._responses[model] = answer

    def generate(self, model: str, request: OracleRequest, *, timeout: float) -> Any:
        self.calls.append((model, request))
        if model not in self._responses:
            raise OracleTransportError(f"no scripted answer for {model}", model=model)
        answer = self._responses[model]
        if isinstance(answer, _Sequence):
            if not answer.items:
                raise OracleTransportError(f"scripted answers for {model} exhausted", model=model)
            answer = answer.items.pop(0)
        if isinstance(answer, BaseException):
            raise answer
        if callable(answer):
            return answer(request)
        return copy.deepcopy(answer)

    @property
    def models_called(self) -> list[str]:
        return [model for model, _ in self.calls]


class _Sequence:
    def __init__(self, items: list[Any]) -> None:
        self.items = items


def sequence(*answers: ScriptedAnswer) -> _Sequence:
    """Script successive answers for one model."""
    return _Sequence(list(answers))


def as_oracle_error(exc: Exception, model: str) -> OracleError:
    if isinstance(exc, OracleError):
        return exc
    return OracleError(f"{type(exc).__name__}: {exc}", model=model, cause=exc)
