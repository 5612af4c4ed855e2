"""Abstract base for all AI model providers, plus the shared provider error."""

from abc import ABC, abstractmethod
from enum import Enum

from meeting_room.models import ModelResponse


class ErrorKind(str, Enum):
    RATE_LIMIT = "rate_limit"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    NETWORK = "network"
    AUTH = "auth"
    INVALID_ARGUMENT = "invalid_argument"
    QUOTA = "quota"
    EMPTY_RESPONSE = "empty_response"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = frozenset({
    ErrorKind.RATE_LIMIT,
    ErrorKind.UNAVAILABLE,
    ErrorKind.TIMEOUT,
    ErrorKind.NETWORK,
})

_FRIENDLY_MESSAGES = {
    ErrorKind.AUTH: "API key is misconfigured; check the environment settings",
    ErrorKind.RATE_LIMIT: "Too many API requests; try again shortly",
    ErrorKind.QUOTA: "API quota exhausted; check the billing settings",
    ErrorKind.INVALID_ARGUMENT: "The request was rejected as invalid; check the input",
}


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str, kind: ErrorKind = ErrorKind.UNKNOWN) -> None:
        self.provider_name = provider_name
        self.kind = kind
        self.detail = message
        super().__init__(f"[{provider_name}] {message}")

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


def classify_error(exc: BaseException) -> ErrorKind:
    """Map an SDK exception onto an ErrorKind.

    The three SDKs expose the HTTP status as ``status_code`` (anthropic,
    openai) or ``code`` (google-genai); the message and class name cover the
    rest.
    """
    if isinstance(exc, ProviderError):
        return exc.kind
    if isinstance(exc, TimeoutError):
        return ErrorKind.TIMEOUT

    text = f"{type(exc).__name__} {exc}".upper()
    status = getattr(exc, "status_code", None) or getattr(exc, "code", None)
    if not isinstance(status, int):
        status = None

    if "QUOTA" in text:
        return ErrorKind.QUOTA
    if status == 429 or "RATE_LIMIT" in text or "RATELIMIT" in text or "RESOURCE_EXHAUSTED" in text:
        return ErrorKind.RATE_LIMIT
    if status in (401, 403) or "API_KEY" in text or "API KEY" in text or "AUTHENTICATION" in text \
            or "PERMISSION_DENIED" in text:
        return ErrorKind.AUTH
    if status in (400, 404, 422) or "INVALID_ARGUMENT" in text:
        return ErrorKind.INVALID_ARGUMENT
    if "TIMEOUT" in text or "TIMED OUT" in text or status == 504:
        return ErrorKind.TIMEOUT
    if status is not None and status >= 500 or "UNAVAILABLE" in text or "INTERNAL" in text \
            or "OVERLOADED" in text:
        return ErrorKind.UNAVAILABLE
    if "CONNECTION" in text or "NETWORK" in text:
        return ErrorKind.NETWORK
    return ErrorKind.UNKNOWN


def format_error(exc: BaseException) -> str:
    """User-facing message for a failure; falls back to the error text itself."""
    kind = classify_error(exc)
    if kind in _FRIENDLY_MESSAGES:
        return _FRIENDLY_MESSAGES[kind]
    if isinstance(exc, ProviderError):
        return exc.detail
    return str(exc) or "An unknown error occurred"


class AIProvider(ABC):
    """Abstract base for all AI model providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'gemini', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        grounded: bool = False,
    ) -> ModelResponse:
        """Generate a response for the given prompt.

        Args:
            prompt: The full prompt text to send.
            temperature: Sampling temperature; provider default when None.
            max_tokens: Output token cap; provider config when None.
            grounded: Ask for web-search grounding. Providers without a
                search tool ignore it and return no sources.

        Returns:
            ModelResponse dataclass with content and metadata.

        Raises:
            ProviderError: On API failure, timeout, or invalid response.
        """
        ...
