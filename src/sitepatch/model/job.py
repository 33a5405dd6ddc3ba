from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from sitepatch.patch.ops import selector_tuple


class JobStatus(StrEnum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.ERROR)

    def can_transition(self, target: JobStatus) -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING}),
    JobStatus.RUNNING: frozenset({JobStatus.DONE, JobStatus.ERROR}),
    JobStatus.DONE: frozenset(),
    JobStatus.ERROR: frozenset(),
}


@dataclass(frozen=True)
class JobPayload:
    prompt: str
    files: dict[str, str] = field(default_factory=dict, hash=False)
    preset: str = ""
    brand: dict[str, Any] | None = field(default=None, hash=False)
    target: str = ""  # root selector override
    protected_selectors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "prompt": self.prompt,
            "files": dict(self.files),
            "preset": self.preset,
            "brand": self.brand,
            "target": self.target,
            "protectedSelectors": list(self.protected_selectors),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobPayload:
        return cls(
            prompt=str(data.get("prompt") or ""),
            files={str(k): v for k, v in (data.get("files") or {}).items()},
            preset=str(data.get("preset") or ""),
            brand=data.get("brand") if isinstance(data.get("brand"), dict) else None,
            target=str(data.get("target") or ""),
            protected_selectors=selector_tuple(data.get("protectedSelectors")),
        )


@dataclass(frozen=True)
class Job:
    id: str
    payload: JobPayload
    status: JobStatus = JobStatus.QUEUED
    logs: tuple[str, ...] = ()
    result: dict[str, Any] | None = field(default=None, hash=False, compare=False)
    error: str | None = None
    created_at: str = ""  # ISO 8601
    updated_at: str = ""
