"""xAI Grok provider adapter.

Grok exposes an OpenAI-compatible API, so this reuses the OpenAI client
with the xAI base URL and a more challenging coaching persona.
"""

from __future__ import annotations

from llmgate.core.llm.adapters.openai_adapter import OpenAIAdapter
from llmgate.core.llm.prompts import CHALLENGER_SYSTEM_PROMPT

XAI_BASE_URL = "https://api.x.ai/v1"


class GrokAdapter(OpenAIAdapter):
    """Adapter for xAI Grok models."""

    provider_id = "grok"
    api_key_envs = ("GROK_API_KEY", "XAI_API_KEY")
    base_url = XAI_BASE_URL
    system_prompt_template = CHALLENGER_SYSTEM_PROMPT
