"""Audit hash chain implementation.

Provides tamper-evident audit logging through cryptographic hash chaining.
Each event links to its predecessor, forming an append-only ledger.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from datetime import datetime, timezone
from collections.abc import AsyncIterator
from typing import Any, Protocol

from llmgate.audit.models import AuditChainStatus, AuditEvent, AuditEventType
from llmgate.core.errors import AuditWriteError

logger = logging.getLogger(__name__)


class AuditStorage(Protocol):
    """Protocol for audit storage backends.

    Implementations must provide append-only semantics.
    """

    async def append(self, event: AuditEvent) -> None:
        """Append an event (insert only, no updates)."""
        ...

    async def get_latest(self) -> AuditEvent | None:
        """Get the most recent event."""
        ...

    async def get_all(self, limit: int = 10000) -> list[AuditEvent]:
        """Get all events, ordered by sequence."""
        ...

    def iter_all(self) -> AsyncIterator[AuditEvent]:
        """Stream the whole ledger in sequence order."""
        ...

    async def get_by_trace(self, trace_id: str) -> list[AuditEvent]:
        """Get the events recorded for one trace ID."""
        ...

    async def count(self) -> int:
        """Get total event count."""
        ...


class AuditChain:
    """Manages the hash-chained audit ledger.

    Appends are serialized by a lock so each new event links to the true
    predecessor; this is the only cross-request lock in the gateway.

    Usage:
        chain = AuditChain(MemoryAuditStorage())

        event = await chain.append_event(
            trace_id=trace_id,
            event_type=AuditEventType.MODEL_OUTPUT,
            user_id="user-1",
            model_id="openai",
            decision_data={"tokens_used": 42},
        )

        valid, error = await chain.verify_chain()
    """

    HASH_ALGORITHM = "sha256"

    def __init__(self, storage: AuditStorage):
        """Initialize audit chain with storage backend."""
        self.storage = storage
        self._lock = asyncio.Lock()

    def compute_record_hash(self, event: AuditEvent) -> str:
        """SHA-256 over the canonical JSON of an event's content."""
        content = event.to_hash_content()
        canonical = json.dumps(content, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    async def append_event(
        self,
        trace_id: str,
        event_type: AuditEventType,
        user_id: str = "",
        session_id: str = "",
        model_id: str | None = None,
        risk_signals: dict[str, Any] | None = None,
        decision_data: dict[str, Any] | None = None,
        actor: str = "system",
    ) -> AuditEvent:
        """Create, link and append a new audit event.

        Raises:
            AuditWriteError: If the storage backend fails
        """
        async with self._lock:
            try:
                previous = await self.storage.get_latest()

                event = AuditEvent(
                    sequence_number=previous.sequence_number + 1 if previous else 1,
                    trace_id=trace_id,
                    event_type=event_type,
                    actor=actor,
                    user_id=user_id,
                    session_id=session_id,
                    model_id=model_id,
                    risk_signals=risk_signals or {},
                    decision_data=decision_data or {},
                    previous_hash=previous.record_hash if previous else "",
                )
                event.record_hash = self.compute_record_hash(event)

                await self.storage.append(event)
            except (OSError, ValueError) as e:
                raise AuditWriteError(f"Failed to append audit event for trace {trace_id}") from e

        logger.debug(
            "Appended audit event: seq=%d type=%s trace=%s hash=%s",
            event.sequence_number,
            event_type.value,
            trace_id,
            event.record_hash[:16] + "...",
        )

        return event

    async def verify_chain(self) -> tuple[bool, str | None]:
        """Verify integrity of the whole ledger.

        Returns:
            Tuple of (is_valid, error_message)
        """
        is_valid, error, _ = await self.walk_chain()
        return is_valid, error

    async def walk_chain(self) -> tuple[bool, str | None, int]:
        """Stream the whole ledger and validate every link.

        Checks that:
        1. Each event's hash matches its content
        2. Each event's previous_hash matches the prior event
        3. Sequence numbers are continuous from 1

        Returns:
            Tuple of (is_valid, error_message, events_checked)
        """
        previous_hash = ""
        expected_sequence = 1
        checked = 0

        async for event in self.storage.iter_all():
            checked += 1

            if event.sequence_number != expected_sequence:
                return False, (
                    f"Sequence gap: expected {expected_sequence}, "
                    f"got {event.sequence_number}"
                ), checked

            if event.previous_hash != previous_hash:
                return False, (
                    f"Chain break at sequence {event.sequence_number}: "
                    f"previous_hash mismatch"
                ), checked

            computed = self.compute_record_hash(event)
            if computed != event.record_hash:
                return False, (
                    f"Hash mismatch at sequence {event.sequence_number}: "
                    f"tampering detected"
                ), checked

            previous_hash = event.record_hash
            expected_sequence += 1

        logger.info("Chain verification passed: events=%d", checked)

        return True, None, checked

    async def events_for_trace(self, trace_id: str) -> list[AuditEvent]:
        return await self.storage.get_by_trace(trace_id)

    async def get_chain_status(self) -> AuditChainStatus:
        """Get current status of the ledger, with a full verification."""
        count = await self.storage.count()
        latest = await self.storage.get_latest()
        valid, error = await self.verify_chain()

        return AuditChainStatus(
            total_events=count,
            last_event_id=latest.event_id if latest else None,
            last_sequence=latest.sequence_number if latest else 0,
            last_timestamp=latest.timestamp if latest else None,
            chain_valid=valid,
            last_verified_at=datetime.now(timezone.utc),
            error_message=error,
        )
