from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any

from sitepatch.errors import InvalidTransitionError
from sitepatch.model.job import Job, JobPayload, JobStatus
from sitepatch.store.db import Database

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_job_id() -> str:
    """Time-ordered hex prefix plus a random suffix."""
    return f"job_{int(time.time() * 1000):x}_{uuid.uuid4().hex[:10]}"


class JobQueue:
    """FIFO of pending job ids. Holds ids only, never payloads."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def push(self, job_id: str) -> None:
        """Append an id at the tail."""
        self._db.execute("INSERT INTO job_queue (job_id) VALUES (?)", (job_id,))

    def pop(self) -> str | None:
        """Remove and return the head id, or None when the queue is empty.

        The read and the delete happen inside one write transaction, so two
        workers can never receive the same id.
        """
        with self._db.transaction() as db:
            row = db.fetch_one(
                "SELECT position, job_id FROM job_queue ORDER BY position ASC LIMIT 1"
            )
            if row is None:
                return None
            db.execute("DELETE FROM job_queue WHERE position = ?", (row["position"],))
            return row["job_id"]

    def size(self) -> int:
        row = self._db.fetch_one("SELECT COUNT(*) AS cnt FROM job_queue")
        assert row is not None
        return row["cnt"]

    def list_ids(self) -> tuple[str, ...]:
        rows = self._db.fetch_all("SELECT job_id FROM job_queue ORDER BY position ASC")
        return tuple(r["job_id"] for r in rows)


class JobRepository:
    """Repository for Job persistence. The single source of truth for job state."""

    def __init__(self, db: Database) -> None:
        self._db = db
        self.queue = JobQueue(db)

    def create(self, payload: JobPayload) -> Job:
        """Store a new queued job and push its id onto the queue tail."""
        now = _now()
        job = Job(
            id=generate_job_id(),
            payload=payload,
            status=JobStatus.QUEUED,
            created_at=now,
            updated_at=now,
        )
        with self._db.transaction() as db:
            db.execute(
                """INSERT INTO jobs (id, status, payload, logs, result, error, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    job.id,
                    job.status.value,
                    json.dumps(payload.to_dict()),
                    json.dumps([]),
                    None,
                    None,
                    job.created_at,
                    job.updated_at,
                ),
            )
            self.queue.push(job.id)
        logger.info("Job %s queued", job.id)
        return job

    def get(self, job_id: str) -> Job | None:
        """Retrieve a job by ID, or None if not found."""
        row = self._db.fetch_one("SELECT * FROM jobs WHERE id = ?", (job_id,))
        if row is None:
            return None
        return _row_to_job(row)

    def transition(
        self,
        job_id: str,
        status: JobStatus,
        *,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> Job:
        """Move a job to *status*, refusing any move the lifecycle forbids.

        Raises:
            KeyError: Unknown job id.
            InvalidTransitionError: The move is not allowed from the current state.
        """
        with self._db.transaction() as db:
            row = db.fetch_one("SELECT status FROM jobs WHERE id = ?", (job_id,))
            if row is None:
                raise KeyError(job_id)
            current = JobStatus(row["status"])
            if not current.can_transition(status):
                raise InvalidTransitionError(job_id, current.value, status.value)
            db.execute(
                "UPDATE jobs SET status = ?, result = ?, error = ?, updated_at = ? WHERE id = ?",
                (
                    status.value,
                    json.dumps(result) if result is not None else None,
                    error,
                    _now(),
                    job_id,
                ),
            )
        job = self.get(job_id)
        assert job is not None
        return job

    def append_log(self, job_id: str, line: str) -> None:
        """Append one line to a job's log."""
        with self._db.transaction() as db:
            row = db.fetch_one("SELECT logs FROM jobs WHERE id = ?", (job_id,))
            if row is None:
                raise KeyError(job_id)
            logs = json.loads(row["logs"])
            logs.append(line)
            db.execute(
                "UPDATE jobs SET logs = ?, updated_at = ? WHERE id = ?",
                (json.dumps(logs), _now(), job_id),
            )

    def list_recent(self, limit: int = 50) -> tuple[Job, ...]:
        rows = self._db.fetch_all(
            "SELECT * FROM jobs ORDER BY created_at DESC LIMIT ?", (limit,)
        )
        return tuple(_row_to_job(r) for r in rows)

    def count_by_status(self) -> dict[str, int]:
        """Return counts of jobs grouped by status."""
        rows = self._db.fetch_all(
            "SELECT status, COUNT(*) as cnt FROM jobs GROUP BY status"
        )
        return {row["status"]: row["cnt"] for row in rows}

    def status_view(self, job_id: str, log_tail: int = 20) -> dict[str, Any] | None:
        """User-facing status: terminal result/error verbatim plus recent logs."""
        job = self.get(job_id)
        if job is None:
            return None
        logs = list(job.logs[-log_tail:]) if log_tail > 0 else []
        return {
            "id": job.id,
            "status": job.status.value,
            "result": job.result if job.status is JobStatus.DONE else None,
            "error": job.error,
            "logs": logs,
            "createdAt": job.created_at,
            "updatedAt": job.updated_at,
        }


def _row_to_job(row) -> Job:
    return Job(
        id=row["id"],
        payload=JobPayload.from_dict(json.loads(row["payload"])),
        status=JobStatus(row["status"]),
        logs=tuple(json.loads(row["logs"])),
        result=json.loads(row["result"]) if row["result"] else None,
        error=row["error"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
