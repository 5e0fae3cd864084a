"""Custom exception hierarchy for docmap.

All application exceptions inherit from :class:`DocMapError`, which
carries an optional ``provider_name`` so error handlers can identify which
external service (e.g. "anthropic", "openai", "sqlite") caused the failure.

The hierarchy is organized by processing domain:

    DocMapError  (base -- catch-all for any docmap error)
    +-- DocumentValidationError  (input rejected at submission / enqueue)
    +-- TextExtractionError      (document bytes could not be turned into text)
    +-- LLMError                 (any LLM API call failure)
    |   +-- RateLimitError       (provider rate-limit exceeded)
    +-- StructuredOutputError    (model answered but no JSON could be parsed)
    +-- ExtractionError          (too few chunks produced a result)
    +-- JobError                 (queue / worker failures)
    |   +-- JobStateError        (illegal job state transition)
    |   +-- JobCancelledError    (cooperative cancellation observed)
    +-- StorageError             (persistence or blob store failure)
    +-- ConfigurationError       (startup / missing config)

Each class declares whether a job failing with it is worth retrying via
the ``retryable`` class attribute.  The job queue consults it before
scheduling another attempt.
"""


class DocMapError(Exception):
    """Base exception for all docmap errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name`` identifying which external service triggered the
    error.  The ``__str__`` method prefixes the provider name in brackets
    for structured log output, e.g. ``[openai] Rate limit exceeded``.
    """

    retryable: bool = True

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------

class DocumentValidationError(DocMapError):
    """Raised when a document is rejected before any job is created."""

    retryable = False

    def __init__(
        self,
        message: str = "Document failed validation",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class TextExtractionError(DocMapError):
    """Raised when text cannot be extracted from the original bytes."""

    retryable = False

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External provider errors
# ---------------------------------------------------------------------------

class LLMError(DocMapError):
    """Raised when an LLM API call fails or returns an empty response."""

    def __init__(
        self,
        message: str = "LLM API call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(LLMError):
    """Raised when a provider rejects a call because of its rate limit.

    The router records the attempt as rate limited and moves on to the
    next provider in the priority list.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StructuredOutputError(DocMapError):
    """Raised when a model response contains no parseable JSON object."""

    def __init__(
        self,
        message: str = "Response did not contain a JSON object",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration errors
# ---------------------------------------------------------------------------

class ExtractionError(DocMapError):
    """Raised when too few chunks of a document yielded a structured result."""

    def __init__(
        self,
        message: str = "Document extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class JobError(DocMapError):
    """Raised for job queue and worker failures."""

    def __init__(
        self,
        message: str = "Job processing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class JobStateError(JobError):
    """Raised when a job is asked to make an illegal state transition."""

    retryable = False

    def __init__(
        self,
        message: str = "Invalid job state transition",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class JobCancelledError(JobError):
    """Raised inside a worker when cancellation of its job is observed."""

    retryable = False

    def __init__(
        self,
        message: str = "Job was cancelled",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Storage / configuration errors
# ---------------------------------------------------------------------------

class StorageError(DocMapError):
    """Raised when the storage or blob layer cannot complete an operation."""

    def __init__(
        self,
        message: str = "Storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(DocMapError):
    """Raised when configuration is invalid or missing at startup."""

    retryable = False

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
