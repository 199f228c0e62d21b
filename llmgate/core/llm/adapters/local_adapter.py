"""Local model adapter for Ollama."""

from __future__ import annotations

from typing import Any

import aiohttp

from llmgate.core.errors import ProviderError
from llmgate.core.llm.adapters.base import ProviderAdapter
from llmgate.core.llm.types import GenerationOptions


class LocalModelAdapter(ProviderAdapter):
    """Adapter for a local Ollama server. No credentials, no cost."""

    provider_id = "local"

    def __init__(
        self,
        model: str = "llama2",
        endpoint: str = "http://localhost:11434",
        probe_timeout: float = 5.0,
        **kwargs: Any,
    ):
        """Initialize local model adapter.

        Args:
            model: Ollama model tag
            endpoint: Server base URL (a trailing /api/generate is tolerated)
            probe_timeout: Seconds allowed for the health probe request
            **kwargs: Additional configuration
        """
        super().__init__(model, **kwargs)

        endpoint = endpoint.rstrip("/")
        if endpoint.endswith("/api/generate"):
            endpoint = endpoint[: -len("/api/generate")]
        self._endpoint = endpoint
        self._probe_timeout = probe_timeout

    async def _complete(
        self,
        prompt: str,
        system_prompt: str,
        options: GenerationOptions,
    ) -> tuple[str, int]:
        """Complete using the Ollama generate API."""
        payload = {
            "model": self.model,
            "prompt": prompt,
            "system": system_prompt,
            "options": {
                "num_predict": options.max_tokens,
                "temperature": options.temperature,
            },
            "stream": False,
        }

        async with aiohttp.ClientSession() as session:
            async with session.post(
                f"{self._endpoint}/api/generate",
                json=payload,
                timeout=aiohttp.ClientTimeout(total=options.timeout),
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise ProviderError(
                        self.provider_id, f"Ollama error {response.status}: {error_text[:200]}"
                    )

                result = await response.json()

        tokens = result.get("prompt_eval_count", 0) + result.get("eval_count", 0)
        return result.get("response", ""), tokens

    async def _probe(self) -> bool:
        """List installed models."""
        async with aiohttp.ClientSession() as session:
            async with session.get(
                f"{self._endpoint}/api/tags",
                timeout=aiohttp.ClientTimeout(total=self._probe_timeout),
            ) as response:
                return response.status == 200
