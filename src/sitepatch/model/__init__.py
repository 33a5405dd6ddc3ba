from __future__ import annotations

from sitepatch.model.job import Job, JobPayload, JobStatus

__all__ = [
    "Job",
    "JobPayload",
    "JobStatus",
]
