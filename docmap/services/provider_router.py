"""Multi-provider routing with ordered fallback.

The router owns every configured :class:`ILLMProvider` and exposes one
operation to the rest of the pipeline: :meth:`ProviderRouter.extract`,
"get a structured extraction for this chunk from whichever provider can
give one".

Provider order
--------------
:meth:`select_providers` puts the configured default provider first (when
it has credentials), followed by the remaining providers in the configured
priority order.  Providers without credentials are skipped.  The order is
computed without any network call.

Failure handling
----------------
Each provider gets exactly one call per chunk.  :meth:`invoke` wraps that
call in a timeout and never raises for provider-side failures; it returns a
:class:`ProviderAttempt` describing how the call ended (success, timeout,
provider error, rate limited, unparseable answer).  :meth:`extract` walks
the providers in order until one succeeds and returns every attempt made,
so chunk-level failures stay visible without failing the document.

Rate limiting
-------------
Each provider has its own sliding-window requests-per-minute budget.
Waiting for a slot suspends only the task making the call, and the wait is
not counted against the call timeout.
"""

from __future__ import annotations

import asyncio
import time

import structlog

from docmap.interfaces.llm_provider import ILLMProvider
from docmap.models.extraction import AttemptOutcome, ExtractionOutcome, ProviderAttempt
from docmap.services.extraction_prompts import EXTRACTION_SYSTEM_PROMPT, build_user_prompt
from docmap.services.response_parser import parse_extraction_response
from docmap.utils.concurrency import SlidingWindowRateLimiter
from docmap.utils.errors import LLMError, RateLimitError, StructuredOutputError

logger = structlog.get_logger(logger_name=__name__)


class ProviderRouter:
    """Selects providers and falls back across them per chunk.

    Parameters
    ----------
    providers:
        Every constructed provider, available or not.
    default_provider:
        Name of the provider to try first when it has credentials.
    priority:
        Provider names in fallback order.  Providers missing from the list
        are tried last, in the order they were passed.
    timeout_seconds:
        Upper bound on a single provider call.
    temperature, max_tokens:
        Passed through to :meth:`ILLMProvider.complete`.
    requests_per_minute:
        Per-provider request budget; ``0`` disables rate limiting.
    """

    def __init__(
        self,
        providers: list[ILLMProvider],
        default_provider: str | None = None,
        priority: list[str] | None = None,
        timeout_seconds: float = 60.0,
        temperature: float = 0.3,
        max_tokens: int = 2000,
        requests_per_minute: int = 0,
    ) -> None:
        self._providers = list(providers)
        self._default_provider = default_provider
        self._priority = list(priority or [])
        self._timeout = timeout_seconds
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._limiters = {
            p.get_provider_name(): SlidingWindowRateLimiter(requests_per_minute)
            for p in self._providers
        }

    # ------------------------------------------------------------------
    # Provider selection
    # ------------------------------------------------------------------

    def select_providers(self) -> list[ILLMProvider]:
        """Return the available providers in the order they should be tried."""
        rank = {name: i for i, name in enumerate(self._priority)}
        ordered = sorted(
            enumerate(self._providers),
            key=lambda pair: (rank.get(pair[1].get_provider_name(), len(rank)), pair[0]),
        )
        available = [p for _, p in ordered if p.is_available()]

        default = next(
            (p for p in available if p.get_provider_name() == self._default_provider),
            None,
        )
        if default is None:
            return available
        return [default] + [p for p in available if p is not default]

    @property
    def provider_names(self) -> list[str]:
        """Names of the currently selectable providers, in order."""
        return [p.get_provider_name() for p in self.select_providers()]

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def invoke(
        self,
        provider: ILLMProvider,
        chunk_text: str,
        document_context: str | None = None,
    ) -> ProviderAttempt:
        """Make one extraction call to *provider* and record how it ended."""
        name = provider.get_provider_name()
        limiter = self._limiters.get(name)
        if limiter is not None:
            await limiter.acquire()

        started = time.monotonic()
        outcome = AttemptOutcome.SUCCESS
        error: str | None = None
        result = None
        try:
            raw = await asyncio.wait_for(
                provider.complete(
                    system_prompt=EXTRACTION_SYSTEM_PROMPT,
                    user_prompt=build_user_prompt(chunk_text, document_context),
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                ),
                timeout=self._timeout,
            )
            result = parse_extraction_response(raw, provider_name=name)
        except asyncio.TimeoutError:
            outcome = AttemptOutcome.TIMEOUT
            error = f"No response within {self._timeout}s"
        except RateLimitError as exc:
            outcome = AttemptOutcome.RATE_LIMITED
            error = str(exc)
        except StructuredOutputError as exc:
            outcome = AttemptOutcome.PARSE_FAILURE
            error = str(exc)
        except LLMError as exc:
            outcome = AttemptOutcome.PROVIDER_ERROR
            error = str(exc)
        except Exception as exc:  # noqa: BLE001
            outcome = AttemptOutcome.PROVIDER_ERROR
            error = f"{type(exc).__name__}: {exc}"

        elapsed = time.monotonic() - started
        if outcome is AttemptOutcome.SUCCESS:
            logger.debug("provider_call_succeeded", provider=name, elapsed=round(elapsed, 3))
        else:
            logger.warning(
                "provider_call_failed",
                provider=name,
                outcome=outcome.value,
                error=error,
                elapsed=round(elapsed, 3),
            )
        return ProviderAttempt(
            provider_name=name,
            outcome=outcome,
            error=error,
            elapsed_seconds=elapsed,
            result=result,
        )

    async def extract(
        self,
        chunk_text: str,
        document_context: str | None = None,
    ) -> ExtractionOutcome:
        """Try providers in order until one returns a structured result.

        Returns
        -------
        ExtractionOutcome
            The winning provider's result and every attempt made.  When no
            provider is available or all of them fail, ``result`` is ``None``.
        """
        providers = self.select_providers()
        if not providers:
            logger.error("no_provider_available")
            return ExtractionOutcome()

        attempts: list[ProviderAttempt] = []
        for provider in providers:
            attempt = await self.invoke(provider, chunk_text, document_context)
            attempts.append(attempt)
            if attempt.succeeded:
                return ExtractionOutcome(
                    result=attempt.result,
                    provider_name=attempt.provider_name,
                    attempts=attempts,
                )

        logger.warning(
            "all_providers_failed",
            attempted=[a.provider_name for a in attempts],
        )
        return ExtractionOutcome(attempts=attempts)
