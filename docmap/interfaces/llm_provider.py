"""Abstract base class for LLM service providers.

Defines the contract for any large-language-model backend used for chunk
extraction.  Implementations wrap the Anthropic API, OpenAI, or an
OpenAI-compatible endpoint such as Moonshot.  The router only ever talks to
this interface, so vendor wire formats never leak into the pipeline.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: AnthropicLLMProvider, OpenAILLMProvider, MoonshotLLMProvider
# Located in: docmap/providers/llm/
class ILLMProvider(ABC):
    """Contract for LLM services used by the provider router."""

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ) -> str:
        """Generate a text completion from the model.

        Parameters
        ----------
        system_prompt:
            The system/instruction message that sets the model's behaviour.
        user_prompt:
            The user-facing prompt containing the chunk to analyse.
        temperature:
            Sampling temperature (0.0 = deterministic, 1.0 = creative).
        max_tokens:
            Upper bound on the number of tokens in the response.

        Returns
        -------
        str
            The model's text response.

        Raises
        ------
        docmap.utils.errors.RateLimitError
            If the provider rejected the call because of its rate limit.
        docmap.utils.errors.LLMError
            If the API call fails or returns an empty response.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the identifier used for routing and logs, e.g. ``"anthropic"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider has credentials configured.

        Must not make a network call.
        """

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """Perform a lightweight API call to confirm credentials are valid.

        Returns
        -------
        bool
            ``True`` if the provider accepted the credentials; ``False``
            otherwise.  Unlike :meth:`is_available`, this method actively
            contacts the remote service.
        """
