"""Generation oracle adapter: backends, prompts and answer validation."""
from __future__ import annotations

from sitepatch.oracle.client import (
    Oracle,
    ResponsesOracle,
    StubOracle,
    as_oracle_error,
    extract_output_text,
    sequence,
)
from sitepatch.oracle.http import HttpClient, HttpResponse
from sitepatch.oracle.output import validate_output
from sitepatch.oracle.prompts import build_request, guess_target_section
from sitepatch.oracle.types import OracleOutput, OracleRequest

__all__ = [
    "Oracle",
    "ResponsesOracle",
    "StubOracle",
    "as_oracle_error",
    "extract_output_text",
    "sequence",
    "HttpClient",
    "HttpResponse",
    "validate_output",
    "build_request",
    "guess_target_section",
    "OracleOutput",
    "OracleRequest",
]
