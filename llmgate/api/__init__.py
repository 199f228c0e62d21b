"""LLM Orchestration Gateway HTTP API."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Body, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from llmgate.api.config import Settings
from llmgate.core.orchestrator import Orchestrator
from llmgate.core.schemas.models import OrchestrationResponse

logger = logging.getLogger(__name__)

MISSING_FIELDS_ERROR = "Missing required fields: prompt, userId"


# =============================================================================
# Response Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "1.0.0"
    rule_set_version: str
    rule_set_hash: str
    providers_registered: int
    providers_healthy: int


class PolicyReloadResponse(BaseModel):
    """Response for policy reload."""

    reloaded: bool
    version_hash: str
    source: str
    reason: str | None = None


# =============================================================================
# FastAPI App
# =============================================================================


def create_app(
    settings: Settings | None = None,
    orchestrator: Orchestrator | None = None,
) -> FastAPI:
    """Build the API around one orchestrator instance."""
    settings = settings or Settings()

    app = FastAPI(
        title=settings.api_title,
        description="Policy-gated routing of prompts to LLM providers with a "
        "tamper-evident audit trail and human oversight for escalations.",
        version=settings.api_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Client-Info", "Apikey"],
    )

    app.state.settings = settings
    app.state.orchestrator = orchestrator or Orchestrator.from_settings(settings)

    from llmgate.api.audit import router as audit_router
    from llmgate.api.oversight import router as oversight_router

    app.include_router(audit_router)
    app.include_router(oversight_router)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.info("Rejected malformed request to %s: %d errors", request.url.path, len(exc.errors()))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid request body"},
        )

    # =========================================================================
    # Health Endpoints
    # =========================================================================

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Service status. Does not probe providers."""
        orch: Orchestrator = app.state.orchestrator
        rule_set = orch.policy_engine.rule_set
        return HealthResponse(
            status="ok",
            version=settings.api_version,
            rule_set_version=rule_set.version,
            rule_set_hash=rule_set.version_hash,
            providers_registered=len(orch.registry.descriptors()),
            providers_healthy=len(orch.registry.list_healthy()),
        )

    @app.get("/providers", tags=["Providers"])
    async def list_providers() -> list[dict[str, Any]]:
        """Provider catalog with last known health. No credentials."""
        orch: Orchestrator = app.state.orchestrator
        return [d.public_view() for d in orch.registry.descriptors()]

    # =========================================================================
    # Orchestration Endpoint
    # =========================================================================

    @app.post("/orchestrate", response_model=OrchestrationResponse, tags=["Orchestration"])
    async def orchestrate(payload: dict[str, Any] = Body(...)) -> Any:
        """Run one prompt through policy, routing, generation and audit.

        Policy outcomes and provider failures are normal 200 responses with
        ``success=false``. Only a missing prompt or user ID is a 400.
        """
        prompt = payload.get("prompt")
        user_id = payload.get("userId", payload.get("user_id"))
        if not isinstance(prompt, str) or not prompt.strip() or not isinstance(user_id, str) or not user_id.strip():
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"error": MISSING_FIELDS_ERROR},
            )

        orch: Orchestrator = app.state.orchestrator
        return await orch.orchestrate(payload)

    # =========================================================================
    # Policy Endpoints
    # =========================================================================

    @app.post("/policies/reload", response_model=PolicyReloadResponse, tags=["Governance"])
    async def reload_policies() -> PolicyReloadResponse:
        """Reload the rule set from its file. A failed load keeps the active set."""
        engine = app.state.orchestrator.policy_engine
        result = engine.reload()
        return PolicyReloadResponse(
            reloaded=result["reloaded"],
            version_hash=engine.rule_set.version_hash,
            source=engine.rule_set.source,
            reason=result.get("reason"),
        )

    return app


__all__ = ["create_app", "HealthResponse", "PolicyReloadResponse"]
