"""Error taxonomy for the orchestration gateway.

Only the coordinator decides how these surface to callers. Nothing below
``Orchestrator.orchestrate`` is allowed to let an exception escape it, and
the text placed in a response never includes vendor detail.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from llmgate.core.schemas.models import PolicyDecision


class GatewayError(Exception):
    """Base class for all gateway errors."""

    public_message = "Internal error"


class PolicyBlocked(GatewayError):
    """A request was refused, pushed back or escalated by policy.

    This is a designed outcome, not a fault. The coordinator returns it as a
    normal ``success=False`` response; the exception exists for callers
    that prefer ``OrchestrationResponse.raise_for_outcome()``.
    """

    public_message = "Request blocked by policy"

    def __init__(self, decision: "PolicyDecision", message: str | None = None):
        self.decision = decision
        super().__init__(message or f"{decision.action.value}: {', '.join(decision.reasons)}")


class NoHealthyProviderError(GatewayError):
    """Every configured provider reports down."""

    public_message = "No healthy providers available"

    def __init__(self, message: str = "No healthy providers available"):
        super().__init__(message)


class ProviderError(GatewayError):
    """A selected provider's call failed.

    Adapters wrap every vendor exception in this type so vendor error shapes
    never leak past the adapter boundary.
    """

    public_message = "Provider request failed"

    def __init__(self, provider_id: str, message: str):
        self.provider_id = provider_id
        self.message = message
        super().__init__(f"[{provider_id}] {message}")


class ValidationError(GatewayError):
    """The inbound request is malformed."""

    public_message = "Invalid request"


class AuditWriteError(GatewayError):
    """The audit or oversight sink failed to persist a record."""

    public_message = "Audit write failed"


class InvalidTransitionError(GatewayError):
    """An oversight session was asked to make a forbidden state change."""

    public_message = "Invalid state transition"


def public_message(error: BaseException) -> str:
    """Safe, generic text for an error, suitable for a response body."""
    if isinstance(error, GatewayError):
        return error.public_message
    return GatewayError.public_message


__all__ = [
    "AuditWriteError",
    "GatewayError",
    "InvalidTransitionError",
    "NoHealthyProviderError",
    "PolicyBlocked",
    "ProviderError",
    "ValidationError",
    "public_message",
]
