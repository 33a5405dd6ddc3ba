from __future__ import annotations

from typing import Any

from sitepatch.errors import OracleOutputError
from sitepatch.oracle.types import OracleOutput

HTML_FILE = "index.html"


def validate_output(raw: Any, *, expect: str | None = None, model: str = "") -> OracleOutput:
    """Check the shape of an oracle answer, whatever schema it was asked for.

    Accepted shapes:

    * ``{"files": {"index.html": ..., ...}}`` or ``{"index.html": ..., ...}``
      (full file set, every value a string);
    * ``{"ops": [...], "targetRoot"?: str, "notes"?: str}`` or a bare list of
      ops (patch). Individual ops are not checked here; the patch engine skips
      the ones it cannot use.

    When *expect* is given (``"site"`` or ``"ops"``), an answer of the other
    kind is rejected as well.

    Raises:
        OracleOutputError: The answer has neither shape.
    """
    if isinstance(raw, list):
        output = OracleOutput(mode="ops", ops=tuple(raw))
    elif not isinstance(raw, dict):
        raise OracleOutputError(f"expected a JSON object, got {type(raw).__name__}", model=model)
    elif "ops" in raw:
        output = _ops_output(raw, model)
    elif "files" in raw or HTML_FILE in raw:
        output = _files_output(raw, model)
    else:
        raise OracleOutputError("answer has neither 'ops' nor 'index.html'", model=model)

    if expect is not None and output.mode != expect:
        raise OracleOutputError(f"expected a {expect!r} answer, got {output.mode!r}", model=model)
    return output


def _ops_output(raw: dict[str, Any], model: str) -> OracleOutput:
    ops = raw["ops"]
    if not isinstance(ops, list):
        raise OracleOutputError("'ops' must be a list", model=model)
    target_root = raw.get("targetRoot") or ""
    if not isinstance(target_root, str):
        raise OracleOutputError("'targetRoot' must be a string", model=model)
    notes = raw.get("notes") or ""
    return OracleOutput(
        mode="ops",
        ops=tuple(ops),
        target_root=target_root.strip(),
        notes=notes if isinstance(notes, str) else "",
    )


def _files_output(raw: dict[str, Any], model: str) -> OracleOutput:
    files = raw.get("files", raw)
    if not isinstance(files, dict):
        raise OracleOutputError("'files' must be an object", model=model)
    if HTML_FILE not in files:
        raise OracleOutputError(f"file set is missing {HTML_FILE!r}", model=model)
    for name, content in files.items():
        if not isinstance(content, str):
            raise OracleOutputError(f"file {name!r} is not a string", model=model)
    return OracleOutput(mode="site", files={str(k): v for k, v in files.items()})
