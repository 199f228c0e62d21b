"""Deterministic offline adapter.

Zero network dependency and zero cost. Useful for development and as a
last-resort provider; it participates in selection like any other.
"""

from __future__ import annotations

from typing import Any

from llmgate.core.llm.adapters.base import ProviderAdapter
from llmgate.core.llm.types import GenerationOptions


class EchoAdapter(ProviderAdapter):
    """Answers with a fixed acknowledgement of the prompt."""

    provider_id = "echo"

    def __init__(self, model: str = "echo-1", reply_prefix: str = "Noted:", **kwargs: Any):
        super().__init__(model, **kwargs)
        self._reply_prefix = reply_prefix

    async def _complete(
        self,
        prompt: str,
        system_prompt: str,
        options: GenerationOptions,
    ) -> tuple[str, int]:
        words = prompt.split()
        content = " ".join([self._reply_prefix, *words[: options.max_tokens]])
        return content, self.estimate_tokens(system_prompt + prompt + content)

    async def _probe(self) -> bool:
        return True
