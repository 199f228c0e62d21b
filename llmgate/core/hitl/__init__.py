"""Human oversight sessions for escalated requests."""

from __future__ import annotations

import json
import logging
import math
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from llmgate.core.errors import AuditWriteError, InvalidTransitionError

logger = logging.getLogger(__name__)


class OversightStatus(str, Enum):
    """Status of an oversight session. The only transition is OPEN -> CLOSED."""

    OPEN = "open"
    CLOSED = "closed"


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class OversightSession(BaseModel):
    """A request awaiting human review."""

    session_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: str
    session_type: str = "escalation"
    opened_by: str = "system"
    opened_reason: str
    risk_level: int = Field(ge=1, le=5)
    status: OversightStatus = OversightStatus.OPEN
    opened_at: str = Field(default_factory=_utcnow_iso)

    # Resolution
    closed_at: str | None = None
    closed_by: str | None = None
    resolution_notes: str | None = None


def risk_level_for(score: float) -> int:
    """Map a risk score in [0, 1] onto the 1..5 oversight scale."""
    return min(5, max(1, math.ceil(score * 5)))


class OversightStore:
    """Holds oversight sessions, optionally persisted to a JSON file."""

    def __init__(self, storage_path: str | Path | None = None):
        """Initialize the store.

        Args:
            storage_path: Directory for ``sessions.json``; in-memory only when None
        """
        self._sessions: dict[str, OversightSession] = {}
        self._sessions_path: Path | None = None

        if storage_path is not None:
            path = Path(storage_path)
            path.mkdir(parents=True, exist_ok=True)
            self._sessions_path = path / "sessions.json"
            self._load_sessions()

    @classmethod
    def from_settings(cls, storage_type: str, storage_path: str) -> OversightStore:
        if storage_type == "memory":
            return cls()
        return cls(storage_path)

    def _load_sessions(self) -> None:
        """Load sessions from storage."""
        if self._sessions_path is None or not self._sessions_path.exists():
            return
        try:
            with open(self._sessions_path, encoding="utf-8") as f:
                data = json.load(f)
            for session_id, session_data in data.items():
                self._sessions[session_id] = OversightSession(**session_data)
        except (OSError, ValueError) as e:
            logger.warning("Could not load oversight sessions from %s: %s", self._sessions_path, e)
            self._sessions = {}

    def _commit(self, sessions: dict[str, OversightSession]) -> None:
        """Persist a new session mapping, then make it the live one.

        Raises:
            AuditWriteError: If the write fails; the live mapping is unchanged
        """
        self._save_sessions(sessions)
        self._sessions = sessions

    def _save_sessions(self, sessions: dict[str, OversightSession]) -> None:
        """Save sessions to storage."""
        if self._sessions_path is None:
            return
        data = {k: v.model_dump(mode="json") for k, v in sessions.items()}
        try:
            with open(self._sessions_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            raise AuditWriteError(f"Failed to persist oversight sessions: {e}") from e

    # =========================================================================
    # Session Management
    # =========================================================================

    def open_session(
        self,
        trace_id: str,
        reason: str,
        risk_level: int,
        opened_by: str = "system",
    ) -> OversightSession:
        """Open an escalation session for a trace.

        Raises:
            AuditWriteError: If the session cannot be persisted
        """
        session = OversightSession(
            trace_id=trace_id,
            opened_by=opened_by,
            opened_reason=reason,
            risk_level=risk_level,
        )
        self._commit({**self._sessions, session.session_id: session})
        logger.info(
            "Oversight session opened: id=%s trace=%s risk_level=%d",
            session.session_id,
            trace_id,
            risk_level,
        )
        return session

    def close_session(
        self,
        session_id: str,
        closed_by: str,
        notes: str | None = None,
    ) -> OversightSession:
        """Close an open session.

        Raises:
            KeyError: If the session does not exist
            InvalidTransitionError: If the session is already closed
            AuditWriteError: If the closed session cannot be persisted
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise KeyError(session_id)
        if session.status != OversightStatus.OPEN:
            raise InvalidTransitionError(
                f"Session {session_id} is {session.status.value}, cannot close"
            )

        closed = session.model_copy(
            update={
                "status": OversightStatus.CLOSED,
                "closed_at": _utcnow_iso(),
                "closed_by": closed_by,
                "resolution_notes": notes,
            }
        )
        self._commit({**self._sessions, session_id: closed})
        return closed

    def get(self, session_id: str) -> OversightSession | None:
        return self._sessions.get(session_id)

    def list_open(self) -> list[OversightSession]:
        """Open sessions, oldest first."""
        sessions = [s for s in self._sessions.values() if s.status == OversightStatus.OPEN]
        return sorted(sessions, key=lambda s: s.opened_at)


__all__ = [
    "OversightSession",
    "OversightStatus",
    "OversightStore",
    "risk_level_for",
]
