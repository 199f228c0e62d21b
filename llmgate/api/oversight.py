"""Oversight API endpoints for reviewing escalated requests."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import BaseModel, Field

from llmgate.core.errors import AuditWriteError, InvalidTransitionError
from llmgate.core.hitl import OversightSession, OversightStore

router = APIRouter(prefix="/oversight", tags=["Oversight"])


def get_oversight_store(request: Request) -> OversightStore:
    return request.app.state.orchestrator.oversight_store


class CloseSessionRequest(BaseModel):
    """Request to close an oversight session."""

    closed_by: str = Field(..., min_length=1, max_length=64, description="Reviewer ID")
    notes: str | None = Field(default=None, max_length=5000, description="Resolution notes")


@router.get("", response_model=list[OversightSession])
async def list_open_sessions(request: Request) -> list[OversightSession]:
    """List sessions awaiting review, oldest first."""
    return get_oversight_store(request).list_open()


@router.get("/{session_id}", response_model=OversightSession)
async def get_session(session_id: str, request: Request) -> OversightSession:
    session = get_oversight_store(request).get(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session


@router.post("/{session_id}/close", response_model=OversightSession)
async def close_session(
    session_id: str,
    body: CloseSessionRequest,
    request: Request,
) -> OversightSession:
    """Close an open session. Closed sessions cannot be reopened or closed again."""
    store = get_oversight_store(request)
    try:
        return store.close_session(session_id, closed_by=body.closed_by, notes=body.notes)
    except KeyError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except AuditWriteError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session could not be saved",
        )
