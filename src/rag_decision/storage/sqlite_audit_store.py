"""SQLite-backed audit trail of terminal responses."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import aiosqlite

from rag_decision.config.constants import AUDIT_QUERY_MAX_CHARS
from rag_decision.exceptions import AuditError
from rag_decision.models.domain import AuditEntry
from rag_decision.storage.migrations import initialize_audit_db


class SQLiteAuditStore:
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    async def initialize(self) -> None:
        await initialize_audit_db(self._db_path)

    async def save_entry(self, entry: AuditEntry) -> None:
        try:
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute(
                    "INSERT OR REPLACE INTO audit_log "
                    "(trace_id, session_id, query, timestamp, latency_ms, kind, complexity, "
                    "confidence, confidence_level, strategy, tokens_used, issues, spans, is_error) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        entry.trace_id,
                        entry.session_id,
                        entry.query[:AUDIT_QUERY_MAX_CHARS],
                        entry.timestamp.isoformat(),
                        entry.latency_ms,
                        entry.kind,
                        entry.complexity,
                        entry.confidence,
                        entry.confidence_level,
                        entry.strategy,
                        entry.tokens_used,
                        json.dumps(entry.issues),
                        json.dumps(entry.spans),
                        int(entry.is_error),
                    ),
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise AuditError(f"Failed to write audit entry {entry.trace_id}: {e}") from e

    async def get_entry(self, trace_id: str) -> AuditEntry | None:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM audit_log WHERE trace_id = ?", (trace_id,)
            ) as cursor:
                row = await cursor.fetchone()
                if row is None:
                    return None
                return self._row_to_entry(row)

    async def get_recent_entries(self, limit: int = 100) -> list[AuditEntry]:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM audit_log ORDER BY timestamp DESC LIMIT ?", (limit,)
            ) as cursor:
                rows = await cursor.fetchall()
                return [self._row_to_entry(row) for row in rows]

    async def count_entries(self) -> int:
        async with aiosqlite.connect(self._db_path) as db:
            async with db.execute("SELECT COUNT(*) FROM audit_log") as cursor:
                row = await cursor.fetchone()
                return row[0] if row else 0

    @staticmethod
    def _row_to_entry(row: aiosqlite.Row) -> AuditEntry:
        timestamp = datetime.fromisoformat(row["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return AuditEntry(
            trace_id=row["trace_id"],
            session_id=row["session_id"],
            query=row["query"],
            timestamp=timestamp,
            latency_ms=row["latency_ms"],
            kind=row["kind"],
            complexity=row["complexity"],
            confidence=row["confidence"],
            confidence_level=row["confidence_level"],
            strategy=row["strategy"],
            tokens_used=row["tokens_used"],
            issues=json.loads(row["issues"]),
            spans=json.loads(row["spans"]),
            is_error=bool(row["is_error"]),
        )
