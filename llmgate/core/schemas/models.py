"""Core data models for the orchestration gateway."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from llmgate.core.errors import (
    GatewayError,
    NoHealthyProviderError,
    PolicyBlocked,
    ProviderError,
    ValidationError,
)

# Machine-readable failure codes carried by OrchestrationResponse.error_code
ERROR_POLICY_BLOCKED = "policy_blocked"
ERROR_NO_PROVIDER = "no_healthy_provider"
ERROR_PROVIDER = "provider_error"
ERROR_VALIDATION = "validation_error"
ERROR_INTERNAL = "internal_error"


class SafetyLevel(str, Enum):
    """Caller-supplied safety hint."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    MAXIMUM = "maximum"


class PolicyAction(str, Enum):
    """Gate outcome computed before any model call."""

    ALLOW = "ALLOW"
    REFUSE = "REFUSE"
    PUSHBACK = "PUSHBACK"
    ESCALATE = "ESCALATE"


class OrchestrationRequest(BaseModel):
    """One inbound call. Created once, never mutated.

    Accepts both the snake_case field names and the camelCase names used on
    the wire by client applications.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    prompt: str = Field(description="Fully formed prompt text")
    user_id: str = Field(alias="userId", description="Caller user ID")
    session_id: str = Field(default="", alias="sessionId", description="Caller session ID")
    mbti_type: str | None = Field(default=None, alias="mbtiType", description="Personality tag")
    context: str | None = Field(default=None, description="Free-form context tag")
    safety_level: SafetyLevel | None = Field(default=None, alias="safetyLevel")
    preferred_provider: str | None = Field(default=None, alias="preferredProvider")
    max_tokens: int = Field(default=1000, ge=1, le=32000, alias="maxTokens")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    timeout: float | None = Field(
        default=None,
        gt=0,
        description="Seconds allowed for the generation call (settings default when unset)",
    )


class PolicyDecision(BaseModel):
    """Result of risk evaluation. Immutable once produced."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    action: PolicyAction = Field(default=PolicyAction.ALLOW)
    reasons: list[str] = Field(default_factory=list, description="Ordered, human-readable")
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    escalation_required: bool = Field(default=False, alias="escalationRequired")
    human_review_required: bool = Field(default=False, alias="humanReviewRequired")
    risk_score: float = Field(default=0.0, ge=0.0, le=1.0, alias="riskScore")
    rule_ids: list[str] = Field(default_factory=list, alias="ruleIds")

    @property
    def allowed(self) -> bool:
        return self.action == PolicyAction.ALLOW

    @classmethod
    def system_error(cls) -> PolicyDecision:
        """The fail-closed decision attached to every errored response."""
        return cls(
            action=PolicyAction.REFUSE,
            reasons=["System error occurred"],
            confidence=1.0,
        )


class OrchestrationResponse(BaseModel):
    """Exactly one of these is produced per OrchestrationRequest."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    success: bool
    response: str | None = Field(default=None, description="Generated text, absent on failure")
    provider: str = Field(default="none", description="Chosen provider ID")
    model: str = Field(default="none", description="Chosen provider display name")
    tokens_used: int = Field(default=0, alias="tokensUsed")
    latency_ms: float = Field(default=0.0, alias="latency")
    cost: float = Field(default=0.0)
    policy_decision: PolicyDecision = Field(alias="policyDecision")
    audit_log_id: str = Field(alias="auditLogId", description="Trace ID shared by audit events")
    error: str | None = Field(default=None)
    error_code: str | None = Field(default=None, alias="errorCode")

    def raise_for_outcome(self) -> None:
        """Raise the matching taxonomy error if this response is a failure."""
        if self.success:
            return
        if self.error_code == ERROR_POLICY_BLOCKED:
            raise PolicyBlocked(self.policy_decision, self.error)
        if self.error_code == ERROR_NO_PROVIDER:
            raise NoHealthyProviderError()
        if self.error_code == ERROR_PROVIDER:
            raise ProviderError(self.provider, self.error or ProviderError.public_message)
        if self.error_code == ERROR_VALIDATION:
            raise ValidationError(self.error or ValidationError.public_message)
        raise GatewayError(self.error or GatewayError.public_message)


__all__ = [
    "OrchestrationRequest",
    "OrchestrationResponse",
    "PolicyAction",
    "PolicyDecision",
    "SafetyLevel",
]
