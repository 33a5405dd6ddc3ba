from __future__ import annotations

from sitepatch.store.db import Database

SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    status TEXT NOT NULL DEFAULT 'queued',
    payload TEXT NOT NULL DEFAULT '{}',
    logs TEXT NOT NULL DEFAULT '[]',
    result TEXT,
    error TEXT,
    created_at TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS job_queue (
    position INTEGER PRIMARY KEY AUTOINCREMENT,
    job_id TEXT NOT NULL
);
"""


def run_migrations(db: Database) -> None:
    """Create all tables."""
    db.executescript(SCHEMA)
