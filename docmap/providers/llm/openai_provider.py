"""OpenAI-compatible LLM provider adapter.

Wraps the ``openai`` async client to implement :class:`ILLMProvider`.
When ``openai_base_url`` is configured the client points at that URL
instead of the default OpenAI endpoint, so any OpenAI-compatible service
can be used.  :class:`~docmap.providers.llm.moonshot_provider.MoonshotLLMProvider`
reuses this adapter with Moonshot's endpoint and credentials.
"""

from __future__ import annotations

import openai
import structlog

from docmap.config.settings import Settings
from docmap.interfaces.llm_provider import ILLMProvider
from docmap.utils.errors import LLMError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)


class OpenAILLMProvider(ILLMProvider):
    """LLM provider backed by an OpenAI-compatible chat completions API."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._configure(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.openai_model,
            label="openai-compatible" if settings.openai_base_url else "openai",
        )

    def _configure(self, api_key: str, base_url: str, model: str, label: str) -> None:
        self._api_key = api_key
        # base_url is only passed for custom endpoints.
        client_kwargs: dict = {
            "api_key": api_key,
            "timeout": openai.Timeout(self._settings.llm_timeout_seconds, connect=5.0),
            "max_retries": 0,
        }
        if base_url:
            client_kwargs["base_url"] = base_url
        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = model
        # Label used in logs and error messages.
        self._provider_label = label

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 2000,
    ) -> str:
        """Generate a text completion via the chat completions API."""
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.RateLimitError as exc:
            raise RateLimitError(
                message=f"{self._provider_label} rate limit exceeded: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APITimeoutError as exc:
            raise LLMError(
                message=(
                    f"{self._provider_label} timed out after "
                    f"{self._settings.llm_timeout_seconds}s"
                ),
                provider_name=self.get_provider_name(),
            ) from exc
        except openai.APIError as exc:
            # "from exc" keeps the SDK traceback attached.
            raise LLMError(
                message=f"{self._provider_label} API error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMError(
                message=f"{self._provider_label} returned empty response",
                provider_name=self.get_provider_name(),
            )
        logger.info(
            "openai_completion",
            model=self._model,
            provider=self._provider_label,
            tokens=response.usage.total_tokens if response.usage else None,
        )
        return content

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured (doesn't verify it works)."""
        return bool(self._api_key)

    async def validate_credentials(self) -> bool:
        """Try listing models to verify the API key works.

        Lightweight call that confirms the key is accepted without incurring
        inference costs.
        """
        if not self.is_available():
            return False
        try:
            await self._client.models.list()
            return True
        except openai.APIError:
            return False

    def get_provider_name(self) -> str:
        """Return 'openai' or 'openai-compatible' depending on configuration."""
        return self._provider_label
