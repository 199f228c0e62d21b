"""OpenAI provider adapter."""

from __future__ import annotations

import os
from typing import Any

from llmgate.core.errors import ProviderError
from llmgate.core.llm.adapters.base import ProviderAdapter
from llmgate.core.llm.types import GenerationOptions


class OpenAIAdapter(ProviderAdapter):
    """Adapter for OpenAI chat completion models."""

    provider_id = "openai"
    api_key_envs: tuple[str, ...] = ("OPENAI_API_KEY",)
    base_url: str | None = None

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str | None = None,
        base_url: str | None = None,
        **kwargs: Any,
    ):
        """Initialize OpenAI adapter.

        Args:
            model: Model name (e.g., "gpt-4o-mini")
            api_key: API key (defaults to the vendor's env var)
            base_url: Override the API base URL
            **kwargs: Additional configuration
        """
        super().__init__(model, **kwargs)

        self._api_key = api_key or next(
            (os.environ[name] for name in self.api_key_envs if os.environ.get(name)),
            None,
        )
        if base_url:
            self.base_url = base_url

        # Initialize client lazily
        self._client = None

    @property
    def client(self):
        """Get or create the async OpenAI client."""
        if self._client is None:
            if not self._api_key:
                raise ProviderError(self.provider_id, "API key not configured")
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self.base_url)
        return self._client

    async def _complete(
        self,
        prompt: str,
        system_prompt: str,
        options: GenerationOptions,
    ) -> tuple[str, int]:
        """Execute a chat completion."""
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            max_tokens=options.max_tokens,
            temperature=options.temperature,
            timeout=options.timeout,
        )

        if not response.choices:
            raise ProviderError(self.provider_id, "Empty completion")

        content = response.choices[0].message.content or ""
        tokens = response.usage.total_tokens if response.usage else self.estimate_tokens(
            prompt + content
        )
        return content, tokens

    async def _probe(self) -> bool:
        """List models; succeeds only with a valid key."""
        if not self._api_key:
            return False
        await self.client.models.list()
        return True
