"""Provider selection.

Greedy, stateless multi-criteria choice over the healthy set. Every
selection is explainable from three inputs: quality score, last measured
latency and cost per token.
"""

from __future__ import annotations

from typing import Any

from llmgate.core.errors import NoHealthyProviderError
from llmgate.core.llm.types import ProviderDescriptor
from llmgate.core.schemas.models import OrchestrationRequest

QUALITY_WEIGHT = 0.4
LATENCY_WEIGHT = 0.3
COST_WEIGHT = 0.3

# Latency at which the latency term reaches zero
LATENCY_CEILING_MS = 5000.0
# Cost scale: a provider at 1/10000 per token scores zero on cost
COST_SCALE = 10000.0


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def score_terms(provider: ProviderDescriptor) -> dict[str, float]:
    """The three clamped inputs to the composite score."""
    return {
        "quality": _clamp(provider.quality_score),
        "latency": _clamp(1.0 - provider.latency_ms / LATENCY_CEILING_MS),
        "cost": _clamp(1.0 - provider.cost_per_token * COST_SCALE),
    }


def score_provider(provider: ProviderDescriptor) -> float:
    """Composite selection score in [0, 1]."""
    terms = score_terms(provider)
    return (
        QUALITY_WEIGHT * terms["quality"]
        + LATENCY_WEIGHT * terms["latency"]
        + COST_WEIGHT * terms["cost"]
    )


def select_provider(
    healthy: list[ProviderDescriptor],
    request: OrchestrationRequest,
) -> ProviderDescriptor:
    """Pick one provider from the healthy set.

    A preferred-provider hint that names a healthy provider wins outright.
    Otherwise the highest score wins; ties keep the earliest-registered
    provider, so the choice is deterministic for a given input list.

    Raises:
        NoHealthyProviderError: If ``healthy`` is empty
    """
    if not healthy:
        raise NoHealthyProviderError()

    if request.preferred_provider:
        for provider in healthy:
            if provider.id == request.preferred_provider:
                return provider

    best = healthy[0]
    best_score = score_provider(best)
    for provider in healthy[1:]:
        score = score_provider(provider)
        if score > best_score:
            best, best_score = provider, score
    return best


def explain_selection(
    healthy: list[ProviderDescriptor],
    request: OrchestrationRequest,
) -> dict[str, Any]:
    """Score breakdown for every candidate, for audit payloads."""
    preferred = request.preferred_provider
    return {
        "preferred_provider": preferred,
        "preference_honored": bool(preferred) and any(p.id == preferred for p in healthy),
        "candidates": [
            {"id": p.id, "score": score_provider(p), **score_terms(p)}
            for p in healthy
        ],
    }
