"""Protocol for the audit trail sink."""

from __future__ import annotations

from typing import Protocol

from rag_decision.models.domain import AuditEntry


class AuditSink(Protocol):
    async def save_entry(self, entry: AuditEntry) -> None: ...
