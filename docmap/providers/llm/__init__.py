"""LLM provider adapters.

Three concrete implementations of ILLMProvider (docmap/interfaces/llm_provider.py):
    - AnthropicLLMProvider -- Claude via the Messages API
    - OpenAILLMProvider    -- OpenAI (or any OpenAI-compatible endpoint)
    - MoonshotLLMProvider  -- Moonshot through its OpenAI-compatible endpoint

main.py builds every provider and hands them to the ProviderRouter, which
decides the order in which they are tried.
"""

from docmap.providers.llm.anthropic_provider import AnthropicLLMProvider
from docmap.providers.llm.moonshot_provider import MoonshotLLMProvider
from docmap.providers.llm.openai_provider import OpenAILLMProvider

__all__ = ["AnthropicLLMProvider", "MoonshotLLMProvider", "OpenAILLMProvider"]
