"""Audit API endpoints.

Read-only access to the audit ledger with chain verification.
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel

from llmgate.audit import AuditChain, AuditChainStatus, AuditEvent

router = APIRouter(prefix="/audit", tags=["Audit"])


def get_audit_chain(request: Request) -> AuditChain:
    return request.app.state.orchestrator.audit_chain


class ChainVerificationResponse(BaseModel):
    """Response from chain verification."""

    is_valid: bool
    events_checked: int
    error_message: str | None = None
    verified_at: datetime


@router.get("/status", response_model=AuditChainStatus)
async def get_chain_status(request: Request) -> AuditChainStatus:
    """Get the status of the audit ledger."""
    return await get_audit_chain(request).get_chain_status()


@router.get("/verify", response_model=ChainVerificationResponse)
async def verify_chain(request: Request) -> ChainVerificationResponse:
    """Verify the integrity of the audit ledger.

    Recomputes every event hash and checks every link.
    """
    chain = get_audit_chain(request)
    is_valid, error, checked = await chain.walk_chain()

    return ChainVerificationResponse(
        is_valid=is_valid,
        events_checked=checked,
        error_message=error,
        verified_at=datetime.now(timezone.utc),
    )


@router.get("/trace/{trace_id}", response_model=list[AuditEvent])
async def get_trace(trace_id: str, request: Request) -> list[AuditEvent]:
    """Get the audit events recorded for one request."""
    events = await get_audit_chain(request).events_for_trace(trace_id)
    if not events:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No audit events for trace {trace_id}",
        )
    return events
