"""Moonshot LLM provider adapter.

Moonshot exposes an OpenAI-compatible chat completions API, so this adapter
is the OpenAI adapter pointed at ``moonshot_base_url`` with Moonshot's key
and model (``moonshot-v1-32k`` by default).
"""

from __future__ import annotations

from docmap.config.settings import Settings
from docmap.providers.llm.openai_provider import OpenAILLMProvider


class MoonshotLLMProvider(OpenAILLMProvider):
    """LLM provider backed by Moonshot's OpenAI-compatible endpoint."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._configure(
            api_key=settings.moonshot_api_key,
            base_url=settings.moonshot_base_url,
            model=settings.moonshot_model,
            label="moonshot",
        )
