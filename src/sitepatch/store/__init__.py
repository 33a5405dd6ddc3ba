from __future__ import annotations

from sitepatch.store.db import Database
from sitepatch.store.migrations import run_migrations
from sitepatch.store.repositories import JobQueue, JobRepository, generate_job_id

__all__ = [
    "Database",
    "run_migrations",
    "JobQueue",
    "JobRepository",
    "generate_job_id",
]
