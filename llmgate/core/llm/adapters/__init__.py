"""Provider adapters for different LLM vendors."""

from llmgate.core.llm.adapters.base import ProviderAdapter
from llmgate.core.llm.adapters.openai_adapter import OpenAIAdapter
from llmgate.core.llm.adapters.anthropic_adapter import AnthropicAdapter
from llmgate.core.llm.adapters.grok_adapter import GrokAdapter
from llmgate.core.llm.adapters.local_adapter import LocalModelAdapter
from llmgate.core.llm.adapters.echo_adapter import EchoAdapter
from llmgate.core.llm.adapters.registry import ProviderRegistry, create_adapter

__all__ = [
    "ProviderAdapter",
    "OpenAIAdapter",
    "AnthropicAdapter",
    "GrokAdapter",
    "LocalModelAdapter",
    "EchoAdapter",
    "ProviderRegistry",
    "create_adapter",
]
