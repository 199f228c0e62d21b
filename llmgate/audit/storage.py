"""Audit storage backends.

Append-only storage for audit events. Neither backend offers update or
delete.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from pathlib import Path

from llmgate.audit.models import AuditEvent

logger = logging.getLogger(__name__)


class MemoryAuditStorage:
    """In-process audit storage. Used in tests and for ephemeral runs."""

    def __init__(self) -> None:
        self._events: list[AuditEvent] = []

    async def append(self, event: AuditEvent) -> None:
        self._events.append(event)

    async def get_latest(self) -> AuditEvent | None:
        return self._events[-1] if self._events else None

    async def get_all(self, limit: int = 10000) -> list[AuditEvent]:
        return list(self._events[:limit])

    async def iter_all(self) -> AsyncIterator[AuditEvent]:
        for event in list(self._events):
            yield event

    async def get_by_trace(self, trace_id: str) -> list[AuditEvent]:
        return [e for e in self._events if e.trace_id == trace_id]

    async def count(self) -> int:
        return len(self._events)


class FileAuditStorage:
    """File-based audit storage.

    Stores events in JSONL (JSON Lines) format, one event per line, in a
    single ledger file.
    """

    LEDGER_FILE = "audit_ledger.jsonl"

    def __init__(self, storage_path: str | Path):
        """Initialize file storage.

        Args:
            storage_path: Directory to store the ledger file
        """
        self.storage_path = Path(storage_path)
        self.storage_path.mkdir(parents=True, exist_ok=True)
        self.ledger_file = self.storage_path / self.LEDGER_FILE
        logger.info("FileAuditStorage initialized at %s", self.ledger_file)

    def _iter_events(self):
        if not self.ledger_file.exists():
            return
        with open(self.ledger_file, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    yield AuditEvent.model_validate_json(line)

    async def append(self, event: AuditEvent) -> None:
        """Append an event to the ledger."""
        with open(self.ledger_file, "a", encoding="utf-8") as f:
            f.write(event.model_dump_json() + "\n")

        logger.debug("Appended audit event: seq=%d trace=%s", event.sequence_number, event.trace_id)

    async def get_latest(self) -> AuditEvent | None:
        """Get the most recent event."""
        if not self.ledger_file.exists():
            return None

        last_line = None
        with open(self.ledger_file, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    last_line = line

        if not last_line:
            return None

        return AuditEvent.model_validate_json(last_line)

    async def get_all(self, limit: int = 10000) -> list[AuditEvent]:
        """Get events in ledger order."""
        events = []
        for event in self._iter_events():
            events.append(event)
            if len(events) >= limit:
                break
        return sorted(events, key=lambda e: e.sequence_number)

    async def iter_all(self) -> AsyncIterator[AuditEvent]:
        """Stream every event in ledger order, without a limit."""
        for event in self._iter_events():
            yield event

    async def get_by_trace(self, trace_id: str) -> list[AuditEvent]:
        """Get every event recorded for one request."""
        return [e for e in self._iter_events() if e.trace_id == trace_id]

    async def count(self) -> int:
        """Get total event count."""
        if not self.ledger_file.exists():
            return 0

        count = 0
        with open(self.ledger_file, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    count += 1

        return count


def get_audit_storage(storage_type: str = "file", path: str | Path = "data/audit"):
    """Get audit storage instance based on configuration."""
    if storage_type == "memory":
        return MemoryAuditStorage()
    if storage_type == "file":
        return FileAuditStorage(path)
    raise ValueError(f"Unknown audit storage type: {storage_type}")
