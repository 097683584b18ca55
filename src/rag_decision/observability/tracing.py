"""Lightweight request tracing with spans."""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4

from rag_decision.models.domain import AuditEntry


@dataclass
class Span:
    name: str
    start_ms: float
    end_ms: float = 0.0
    metadata: dict = field(default_factory=dict)

    @property
    def duration_ms(self) -> float:
        return self.end_ms - self.start_ms


class TraceContext:
    def __init__(self, trace_id: str | None = None) -> None:
        self.trace_id = trace_id or str(uuid4())
        self.spans: list[Span] = []
        self.start_time = time.monotonic()
        self._epoch = time.time()

    @contextmanager
    def span(self, name: str, **metadata):
        s = Span(
            name=name,
            start_ms=(time.monotonic() - self.start_time) * 1000,
            metadata=metadata,
        )
        try:
            yield s
        finally:
            s.end_ms = (time.monotonic() - self.start_time) * 1000
            self.spans.append(s)

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.start_time) * 1000

    def span_summary(self) -> list[dict]:
        return [
            {"name": s.name, "duration_ms": round(s.duration_ms, 3), **s.metadata}
            for s in self.spans
        ]

    def to_audit_entry(
        self,
        session_id: str,
        query: str,
        kind: str,
        complexity: str | None,
        confidence: float,
        confidence_level: str,
        strategy: str | None,
        tokens_used: int,
        issues: list[str],
        is_error: bool = False,
    ) -> AuditEntry:
        return AuditEntry(
            trace_id=self.trace_id,
            session_id=session_id,
            query=query,
            timestamp=datetime.fromtimestamp(self._epoch, tz=timezone.utc),
            latency_ms=self.elapsed_ms,
            kind=kind,
            complexity=complexity,
            confidence=confidence,
            confidence_level=confidence_level,
            strategy=strategy,
            tokens_used=tokens_used,
            issues=issues,
            spans=self.span_summary(),
            is_error=is_error,
        )
