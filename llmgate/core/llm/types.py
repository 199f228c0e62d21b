"""Core types for provider routing and generation."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from llmgate.core.schemas.models import OrchestrationRequest, SafetyLevel


class ProviderHealth(str, Enum):
    """Provider availability as of the last health check."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"


class ProviderDescriptor(BaseModel):
    """Catalog entry for one configured vendor.

    Descriptors are immutable values. The registry replaces a provider's
    descriptor wholesale after each health check, so a reader always sees
    either the old or the new state, never a half-written one.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Provider ID, e.g. 'openai'")
    name: str = Field(description="Display name")
    endpoint: str = Field(default="")
    model: str = Field(default="", description="Vendor model name")
    credential_env: str | None = Field(
        default=None, description="Environment variable holding the credential"
    )

    health: ProviderHealth = Field(default=ProviderHealth.DOWN)
    latency_ms: float = Field(default=0.0, ge=0.0)
    cost_per_token: float = Field(default=0.0, ge=0.0)
    quality_score: float = Field(default=0.5, ge=0.0, le=1.0)

    last_health_check: datetime | None = Field(default=None)
    last_success: datetime | None = Field(default=None)

    def is_selectable(self, now: datetime, max_staleness: timedelta) -> bool:
        """Healthy and successfully checked within the staleness bound."""
        if self.health != ProviderHealth.HEALTHY or self.last_success is None:
            return False
        return now - self.last_success <= max_staleness

    def public_view(self) -> dict:
        """Descriptor fields safe to expose over HTTP."""
        return self.model_dump(mode="json", exclude={"credential_env"})


class GenerationOptions(BaseModel):
    """Per-call options handed to an adapter."""

    model_config = ConfigDict(frozen=True)

    max_tokens: int = Field(default=1000, ge=1)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    mbti_type: str | None = Field(default=None)
    context: str | None = Field(default=None)
    safety_level: SafetyLevel | None = Field(default=None)
    timeout: float = Field(default=60.0, gt=0)

    @classmethod
    def from_request(cls, request: OrchestrationRequest, default_timeout: float) -> GenerationOptions:
        return cls(
            max_tokens=request.max_tokens,
            temperature=request.temperature,
            mbti_type=request.mbti_type,
            context=request.context,
            safety_level=request.safety_level,
            timeout=request.timeout or default_timeout,
        )


class GenerationResult(BaseModel):
    """Normalized output of one adapter call."""

    response: str = Field(description="Generated content")
    tokens_used: int = Field(default=0, ge=0)
    latency_ms: float = Field(default=0.0, ge=0.0)


def calculate_cost(tokens_used: int, cost_per_token: float) -> float:
    """Cost of a call. Exact product, no rounding."""
    return tokens_used * cost_per_token
