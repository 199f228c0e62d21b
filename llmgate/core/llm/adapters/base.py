"""Base provider adapter interface."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

from llmgate.core.errors import ProviderError
from llmgate.core.llm.prompts import DEFAULT_SYSTEM_PROMPT, SystemPromptTemplate
from llmgate.core.llm.types import GenerationOptions, GenerationResult

logger = logging.getLogger(__name__)


class ProviderAdapter(ABC):
    """Base class for vendor-specific adapters.

    Adapters own the vendor request envelope, system prompt injection and
    usage accounting. Subclasses implement ``_complete`` and ``_probe``;
    this base turns every vendor failure into a ``ProviderError`` so the
    coordinator only ever sees one error shape.
    """

    provider_id: str = "base"
    system_prompt_template: SystemPromptTemplate = DEFAULT_SYSTEM_PROMPT

    def __init__(self, model: str, **kwargs: Any):
        """Initialize the adapter with vendor model name and optional config."""
        self.model = model
        self._config = kwargs

    @abstractmethod
    async def _complete(
        self,
        prompt: str,
        system_prompt: str,
        options: GenerationOptions,
    ) -> tuple[str, int]:
        """Call the vendor.

        Returns:
            Tuple of (generated text, total tokens used)
        """

    @abstractmethod
    async def _probe(self) -> bool:
        """Cheap vendor reachability check."""

    def build_system_prompt(self, options: GenerationOptions) -> str:
        """Assemble the system prompt for this vendor."""
        return self.system_prompt_template.render(options)

    async def generate(self, prompt: str, options: GenerationOptions) -> GenerationResult:
        """Generate a completion in the common shape.

        Raises:
            ProviderError: On any vendor failure
        """
        start_time = time.time()
        try:
            content, tokens_used = await self._complete(
                prompt,
                self.build_system_prompt(options),
                options,
            )
        except ProviderError:
            raise
        except Exception as e:
            latency = (time.time() - start_time) * 1000
            raise ProviderError(
                self.provider_id, f"{type(e).__name__} after {latency:.0f}ms: {e}"
            ) from e

        latency = (time.time() - start_time) * 1000
        return GenerationResult(
            response=content,
            tokens_used=max(tokens_used, 0),
            latency_ms=latency,
        )

    async def health_check(self) -> bool:
        """Check if the provider is available.

        Never raises; any failure reads as unavailable.
        """
        try:
            return bool(await self._probe())
        except Exception as e:
            logger.debug("Health probe failed: provider=%s error=%s", self.provider_id, e)
            return False

    def estimate_tokens(self, text: str) -> int:
        """Rough estimate, ~4 characters per token."""
        return len(text) // 4
