"""Schemas for the orchestration gateway."""

from llmgate.core.schemas.models import (
    OrchestrationRequest,
    OrchestrationResponse,
    PolicyAction,
    PolicyDecision,
    SafetyLevel,
)

__all__ = [
    "OrchestrationRequest",
    "OrchestrationResponse",
    "PolicyAction",
    "PolicyDecision",
    "SafetyLevel",
]
