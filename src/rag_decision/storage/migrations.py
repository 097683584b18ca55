"""Idempotent database schema creation."""

from __future__ import annotations

from pathlib import Path

import aiosqlite

AUDIT_LOG_TABLE = """
CREATE TABLE IF NOT EXISTS audit_log (
    trace_id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    query TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    latency_ms REAL NOT NULL,
    kind TEXT NOT NULL,
    complexity TEXT,
    confidence REAL NOT NULL,
    confidence_level TEXT NOT NULL,
    strategy TEXT,
    tokens_used INTEGER NOT NULL DEFAULT 0,
    issues TEXT NOT NULL DEFAULT '[]',
    spans TEXT NOT NULL DEFAULT '[]',
    is_error INTEGER NOT NULL DEFAULT 0
)
"""

AUDIT_TIMESTAMP_INDEX = """
CREATE INDEX IF NOT EXISTS idx_audit_log_timestamp ON audit_log(timestamp)
"""

AUDIT_SESSION_INDEX = """
CREATE INDEX IF NOT EXISTS idx_audit_log_session ON audit_log(session_id)
"""


async def initialize_audit_db(db_path: str) -> None:
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(db_path) as db:
        await db.execute(AUDIT_LOG_TABLE)
        await db.execute(AUDIT_TIMESTAMP_INDEX)
        await db.execute(AUDIT_SESSION_INDEX)
        await db.commit()
