"""Provider layer for the gateway.

Uniform adapters over each vendor, a registry that owns rolling health
state, and the scoring rule that picks one healthy provider per request.
"""

from llmgate.core.llm.types import (
    GenerationOptions,
    GenerationResult,
    ProviderDescriptor,
    ProviderHealth,
    calculate_cost,
)
from llmgate.core.llm.router import (
    explain_selection,
    score_provider,
    select_provider,
)
from llmgate.core.llm.adapters import (
    ProviderAdapter,
    ProviderRegistry,
    create_adapter,
)

__all__ = [
    # Types
    "GenerationOptions",
    "GenerationResult",
    "ProviderDescriptor",
    "ProviderHealth",
    "calculate_cost",
    # Selection
    "explain_selection",
    "score_provider",
    "select_provider",
    # Adapters
    "ProviderAdapter",
    "ProviderRegistry",
    "create_adapter",
]
