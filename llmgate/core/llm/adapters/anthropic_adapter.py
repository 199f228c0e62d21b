"""Anthropic Claude provider adapter."""

from __future__ import annotations

import os
from typing import Any

from llmgate.core.errors import ProviderError
from llmgate.core.llm.adapters.base import ProviderAdapter
from llmgate.core.llm.types import GenerationOptions


class AnthropicAdapter(ProviderAdapter):
    """Adapter for Anthropic Claude models."""

    provider_id = "claude"

    # Model-specific output limits
    MODEL_CONFIGS = {
        "claude-3-haiku-20240307": {"max_output": 4096},
        "claude-3-5-haiku-latest": {"max_output": 8192},
        "claude-sonnet-4-5": {"max_output": 16000},
        "claude-opus-4-5": {"max_output": 32000},
    }

    def __init__(
        self,
        model: str = "claude-3-haiku-20240307",
        api_key: str | None = None,
        **kwargs: Any,
    ):
        """Initialize Anthropic adapter.

        Args:
            model: Model name
            api_key: API key (defaults to ANTHROPIC_API_KEY, then CLAUDE_API_KEY)
            **kwargs: Additional configuration
        """
        super().__init__(model, **kwargs)

        self._api_key = (
            api_key or os.environ.get("ANTHROPIC_API_KEY") or os.environ.get("CLAUDE_API_KEY")
        )
        config = self.MODEL_CONFIGS.get(model, {"max_output": 4096})
        self._max_output = config["max_output"]

        # Initialize client lazily
        self._client = None

    @property
    def client(self):
        """Get or create the async Anthropic client."""
        if self._client is None:
            if not self._api_key:
                raise ProviderError(self.provider_id, "API key not configured")
            from anthropic import AsyncAnthropic

            self._client = AsyncAnthropic(api_key=self._api_key)
        return self._client

    async def _complete(
        self,
        prompt: str,
        system_prompt: str,
        options: GenerationOptions,
    ) -> tuple[str, int]:
        """Execute a messages request."""
        response = await self.client.messages.create(
            model=self.model,
            # Respect model's max output limit
            max_tokens=min(options.max_tokens, self._max_output),
            temperature=min(options.temperature, 1.0),
            system=system_prompt,
            messages=[{"role": "user", "content": prompt}],
            timeout=options.timeout,
        )

        content = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        tokens = (
            response.usage.input_tokens + response.usage.output_tokens
            if response.usage
            else self.estimate_tokens(prompt + content)
        )
        return content, tokens

    async def _probe(self) -> bool:
        if not self._api_key:
            return False
        await self.client.models.list(limit=1)
        return True

    def estimate_tokens(self, text: str) -> int:
        """Slightly more conservative than the base estimate."""
        return int(len(text) / 3.5)
