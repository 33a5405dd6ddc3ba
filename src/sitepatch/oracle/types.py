from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class OracleRequest:
    """What every model in the chain is asked.

    ``mode`` is ``"ops"`` for a patch against ``current_files`` or ``"site"``
    for a full file set.
    """

    system_instructions: str
    prompt: str
    current_files: dict[str, str] = field(default_factory=dict, hash=False)
    brand: dict[str, Any] | None = field(default=None, hash=False)
    target_root: str = ""
    mode: str = "ops"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "systemInstructions": self.system_instructions,
            "prompt": self.prompt,
            "currentFiles": dict(self.current_files),
            "mode": self.mode,
        }
        if self.brand is not None:
            data["brand"] = self.brand
        if self.target_root:
            data["targetRoot"] = self.target_root
        return data


@dataclass(frozen=True)
class OracleOutput:
    """A structurally valid oracle answer: either a file set or an ops patch."""

    mode: str
    files: dict[str, str] = field(default_factory=dict, hash=False)
    ops: tuple[Any, ...] = field(default=(), hash=False)
    target_root: str = ""
    notes: str = ""
