"""Orchestration coordinator.

Drives one request through policy, routing, generation and audit, and
turns every outcome (including failures) into exactly one
``OrchestrationResponse`` and exactly one audit event.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import pydantic

from llmgate.audit import AuditChain, AuditEventType, get_audit_storage
from llmgate.core.errors import (
    AuditWriteError,
    GatewayError,
    NoHealthyProviderError,
    ProviderError,
    ValidationError,
    public_message,
)
from llmgate.core.governance import PolicyEngine
from llmgate.core.hitl import OversightStore, risk_level_for
from llmgate.core.llm import (
    GenerationOptions,
    ProviderDescriptor,
    ProviderRegistry,
    calculate_cost,
    explain_selection,
    select_provider,
)
from llmgate.core.schemas.models import (
    ERROR_INTERNAL,
    ERROR_NO_PROVIDER,
    ERROR_POLICY_BLOCKED,
    ERROR_PROVIDER,
    ERROR_VALIDATION,
    OrchestrationRequest,
    OrchestrationResponse,
    PolicyAction,
    PolicyDecision,
)

if TYPE_CHECKING:
    from llmgate.api.config import Settings

logger = logging.getLogger(__name__)

# Characters of the prompt kept in the policy audit payload
PROMPT_EXCERPT_CHARS = 500

ERROR_CODES: tuple[tuple[type[GatewayError], str], ...] = (
    (ValidationError, ERROR_VALIDATION),
    (NoHealthyProviderError, ERROR_NO_PROVIDER),
    (ProviderError, ERROR_PROVIDER),
)


def error_code_for(error: BaseException) -> str:
    for error_type, code in ERROR_CODES:
        if isinstance(error, error_type):
            return code
    return ERROR_INTERNAL


@dataclass
class _Outcome:
    """A finished response plus the single audit event that records it."""

    response: OrchestrationResponse
    event_type: AuditEventType
    model_id: str | None = None
    risk_signals: dict[str, Any] = field(default_factory=dict)
    decision_data: dict[str, Any] = field(default_factory=dict)


def _risk_signals(decision: PolicyDecision | None) -> dict[str, Any]:
    if decision is None:
        return {}
    return {"decision": decision.model_dump(mode="json")}


def _log_late_write(trace_id: str, task: asyncio.Future) -> None:
    """Collect the result of an audit write that outlived its timeout."""
    if task.cancelled():
        logger.warning("Audit write cancelled: trace=%s", trace_id)
        return
    error = task.exception()
    if error is not None:
        logger.warning("Audit write failed: trace=%s error=%s", trace_id, error)


class Orchestrator:
    """Runs the orchestration pipeline for one request at a time per call.

    The coordinator is stateless across requests. Its collaborators are
    injected: a policy engine, a provider registry, an audit chain and an
    oversight store.
    """

    def __init__(
        self,
        policy_engine: PolicyEngine,
        registry: ProviderRegistry,
        audit_chain: AuditChain,
        oversight_store: OversightStore,
        generation_timeout: float = 60.0,
        audit_write_timeout: float = 5.0,
    ):
        self.policy_engine = policy_engine
        self.registry = registry
        self.audit_chain = audit_chain
        self.oversight_store = oversight_store
        self.generation_timeout = generation_timeout
        self.audit_write_timeout = audit_write_timeout

    @classmethod
    def from_settings(cls, settings: "Settings") -> Orchestrator:
        """Wire a coordinator from configuration."""
        return cls(
            policy_engine=PolicyEngine(
                rules_path=settings.policy_rules_path,
                reload_interval=settings.policy_reload_interval,
            ),
            registry=ProviderRegistry.from_settings(settings),
            audit_chain=AuditChain(
                get_audit_storage(settings.audit_storage_type, settings.audit_storage_path)
            ),
            oversight_store=OversightStore.from_settings(
                settings.oversight_storage_type, settings.oversight_storage_path
            ),
            generation_timeout=settings.generation_timeout,
            audit_write_timeout=settings.audit_write_timeout,
        )

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def orchestrate(
        self, request: OrchestrationRequest | dict[str, Any]
    ) -> OrchestrationResponse:
        """Process one request end to end.

        Never raises, except to propagate cancellation of the calling task.
        Every exit path records exactly one audit event.
        """
        trace_id = str(uuid.uuid4())
        identity = self._identity(request)
        decision: PolicyDecision | None = None
        selected: ProviderDescriptor | None = None

        try:
            validated = self._validate(request)
            decision = self.policy_engine.evaluate(validated)
            logger.info(
                "Policy decision: trace=%s action=%s risk=%.2f rules=%s",
                trace_id,
                decision.action.value,
                decision.risk_score,
                decision.rule_ids,
            )

            if decision.action != PolicyAction.ALLOW:
                outcome = self._blocked(validated, decision, trace_id)
            else:
                await self.registry.refresh_health()
                healthy = self.registry.list_healthy()
                selected = select_provider(healthy, validated)
                outcome = await self._generate(validated, decision, selected, healthy, trace_id)

        except asyncio.CancelledError:
            logger.warning("Request cancelled: trace=%s", trace_id)
            outcome = self._failed(
                trace_id, identity, decision, selected, GatewayError("Request cancelled")
            )
            await self._record(trace_id, identity, outcome)
            raise

        except Exception as e:
            if isinstance(e, GatewayError):
                logger.warning("Orchestration failed: trace=%s error=%s", trace_id, e)
            else:
                logger.exception("Unexpected orchestration error: trace=%s", trace_id)
            outcome = self._failed(trace_id, identity, decision, selected, e)

        await self._record(trace_id, identity, outcome)
        return outcome.response

    def _identity(self, request: OrchestrationRequest | dict[str, Any]) -> dict[str, str]:
        """Best-effort user and session IDs, available even for invalid input."""
        if isinstance(request, OrchestrationRequest):
            return {"user_id": request.user_id, "session_id": request.session_id}
        if isinstance(request, dict):
            return {
                "user_id": str(request.get("userId") or request.get("user_id") or ""),
                "session_id": str(request.get("sessionId") or request.get("session_id") or ""),
            }
        return {"user_id": "", "session_id": ""}

    def _validate(self, request: OrchestrationRequest | dict[str, Any]) -> OrchestrationRequest:
        """Check required fields.

        Raises:
            ValidationError: If prompt or user ID is missing or empty
        """
        if not isinstance(request, OrchestrationRequest):
            try:
                request = OrchestrationRequest.model_validate(request)
            except pydantic.ValidationError as e:
                raise ValidationError(f"Malformed request: {e.error_count()} errors") from e

        missing = [
            name
            for name, value in (("prompt", request.prompt), ("userId", request.user_id))
            if not value or not value.strip()
        ]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")
        return request

    def _blocked(
        self,
        request: OrchestrationRequest,
        decision: PolicyDecision,
        trace_id: str,
    ) -> _Outcome:
        """Build the outcome for REFUSE, PUSHBACK and ESCALATE."""
        reasons = ", ".join(decision.reasons)
        decision_data: dict[str, Any] = {
            "decision": decision.model_dump(mode="json"),
            "prompt": request.prompt[:PROMPT_EXCERPT_CHARS],
            "rule_set_version": self.policy_engine.rule_set.version_hash,
        }

        if decision.action == PolicyAction.ESCALATE:
            provider, model = "oversight", "human"
            error = "Request escalated to human oversight"
            decision_data["oversight_session_id"] = self._open_oversight(
                trace_id, decision
            )
        elif decision.action == PolicyAction.PUSHBACK:
            provider, model = "system", "pushback"
            error = f"Request requires clarification: {reasons}"
        else:
            provider, model = "none", "none"
            error = f"Request refused: {reasons}"

        return _Outcome(
            response=OrchestrationResponse(
                success=False,
                provider=provider,
                model=model,
                policy_decision=decision,
                audit_log_id=trace_id,
                error=error,
                error_code=ERROR_POLICY_BLOCKED,
            ),
            event_type=AuditEventType.POLICY_DECISION,
            risk_signals=_risk_signals(decision),
            decision_data=decision_data,
        )

    def _open_oversight(self, trace_id: str, decision: PolicyDecision) -> str | None:
        """Open an escalation session. Sink failures are logged, not raised."""
        try:
            session = self.oversight_store.open_session(
                trace_id=trace_id,
                reason=", ".join(decision.reasons),
                risk_level=risk_level_for(decision.risk_score),
            )
        except AuditWriteError as e:
            logger.warning("Oversight session not persisted: trace=%s error=%s", trace_id, e)
            return None
        return session.session_id

    async def _generate(
        self,
        request: OrchestrationRequest,
        decision: PolicyDecision,
        provider: ProviderDescriptor,
        healthy: list[ProviderDescriptor],
        trace_id: str,
    ) -> _Outcome:
        """Call the selected provider once, under the generation timeout.

        Raises:
            ProviderError: On vendor failure or timeout
        """
        adapter = self.registry.get_adapter(provider.id)
        options = GenerationOptions.from_request(request, self.generation_timeout)

        try:
            result = await asyncio.wait_for(
                adapter.generate(request.prompt, options), timeout=options.timeout
            )
        except asyncio.TimeoutError as e:
            raise ProviderError(
                provider.id, f"Generation timed out after {options.timeout:.1f}s"
            ) from e

        cost = calculate_cost(result.tokens_used, provider.cost_per_token)
        logger.info(
            "Generation complete: trace=%s provider=%s tokens=%d latency=%.0fms",
            trace_id,
            provider.id,
            result.tokens_used,
            result.latency_ms,
        )

        return _Outcome(
            response=OrchestrationResponse(
                success=True,
                response=result.response,
                provider=provider.id,
                model=provider.name,
                tokens_used=result.tokens_used,
                latency_ms=result.latency_ms,
                cost=cost,
                policy_decision=decision,
                audit_log_id=trace_id,
            ),
            event_type=AuditEventType.MODEL_OUTPUT,
            model_id=provider.id,
            risk_signals=_risk_signals(decision),
            decision_data={
                "provider": provider.id,
                "tokens_used": result.tokens_used,
                "latency": result.latency_ms,
                "cost": cost,
                "selection": explain_selection(healthy, request),
                "rule_set_version": self.policy_engine.rule_set.version_hash,
            },
        )

    def _failed(
        self,
        trace_id: str,
        identity: dict[str, str],
        decision: PolicyDecision | None,
        provider: ProviderDescriptor | None,
        error: BaseException,
    ) -> _Outcome:
        """Fail-closed outcome. Response text stays generic; detail goes to audit."""
        error_code = error_code_for(error)
        decision_data: dict[str, Any] = {
            **identity,
            "error": str(error),
            "error_type": type(error).__name__,
            "error_code": error_code,
        }
        if decision is not None:
            decision_data["decision"] = decision.model_dump(mode="json")

        return _Outcome(
            response=OrchestrationResponse(
                success=False,
                provider=provider.id if provider else "none",
                model=provider.name if provider else "none",
                policy_decision=PolicyDecision.system_error(),
                audit_log_id=trace_id,
                error=public_message(error),
                error_code=error_code,
            ),
            event_type=AuditEventType.ERROR,
            model_id=provider.id if provider else None,
            risk_signals=_risk_signals(decision),
            decision_data=decision_data,
        )

    async def _record(self, trace_id: str, identity: dict[str, str], outcome: _Outcome) -> None:
        """Append the request's audit event.

        The write is shielded from cancellation and bounded by the audit
        write timeout. Failures are logged; the response is returned anyway.
        """
        write = asyncio.ensure_future(
            self.audit_chain.append_event(
                trace_id=trace_id,
                event_type=outcome.event_type,
                user_id=identity["user_id"],
                session_id=identity["session_id"],
                model_id=outcome.model_id,
                risk_signals=outcome.risk_signals,
                decision_data=outcome.decision_data,
            )
        )
        try:
            await asyncio.wait_for(asyncio.shield(write), timeout=self.audit_write_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Audit write still pending after %.1fs: trace=%s",
                self.audit_write_timeout,
                trace_id,
            )
            write.add_done_callback(lambda task: _log_late_write(trace_id, task))
        except AuditWriteError as e:
            logger.warning("Audit write failed: trace=%s error=%s", trace_id, e)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Audit write failed: trace=%s", trace_id)
