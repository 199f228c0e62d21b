"""Audit data models.

Append-only audit events with hash chaining for tamper-evident logging.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of auditable events. One per orchestrated request."""

    POLICY_DECISION = "policy_decision"
    MODEL_OUTPUT = "model_output"
    ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    """Tamper-evident audit event.

    Chain integrity:
    - Each event's ``record_hash`` is computed from its contents + ``previous_hash``
    - ``previous_hash`` links to the prior event in the ledger
    - The genesis event has an empty ``previous_hash``
    """

    # Identity
    event_id: str = Field(default_factory=lambda: str(uuid4()))
    sequence_number: int = Field(description="Monotonically increasing position in the ledger")
    trace_id: str = Field(description="Request trace ID, returned to callers as audit_log_id")
    timestamp: datetime = Field(default_factory=_utcnow)

    # Event details
    event_type: AuditEventType
    actor: str = Field(default="system")
    user_id: str = Field(default="")
    session_id: str = Field(default="")
    model_id: str | None = Field(default=None, description="Provider ID, when one was chosen")
    risk_signals: dict[str, Any] = Field(default_factory=dict)
    decision_data: dict[str, Any] = Field(default_factory=dict)

    # Chain integrity
    previous_hash: str = Field(default="")
    record_hash: str = Field(default="")

    def to_hash_content(self) -> dict[str, Any]:
        """Deterministic content for hashing. Excludes ``record_hash``."""
        return {
            "event_id": self.event_id,
            "sequence_number": self.sequence_number,
            "trace_id": self.trace_id,
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "actor": self.actor,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "model_id": self.model_id,
            "risk_signals": self.risk_signals,
            "decision_data": self.decision_data,
            "previous_hash": self.previous_hash,
        }


class AuditChainStatus(BaseModel):
    """Status of the audit ledger."""

    total_events: int
    last_event_id: str | None
    last_sequence: int
    last_timestamp: datetime | None
    chain_valid: bool
    last_verified_at: datetime | None
    error_message: str | None = None
