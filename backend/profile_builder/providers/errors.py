"""Errors raised by LLM providers.

Adapters translate every SDK failure into one of these. The collaborators
retry TransientError only and turn any other ProviderError into
CollaboratorUnavailableError, which the pipeline reports as a notice
before moving on without that collaborator's result.
"""


__all__ = [
    "ProviderError",
    "RateLimitError",
    "AuthenticationError",
    "ModelNotFoundError",
    "ContentFilterError",
    "ContextLengthError",
    "TransientError",
]


class ProviderError(Exception):
    """The model API refused or failed a completion.

    Also raised as-is for status errors with no dedicated subclass, such
    as 403 or 422 responses.
    """

    pass


class RateLimitError(ProviderError):
    """429 from the model API, with the provider's retry hint if sent."""

    def __init__(self, message: str, retry_after_seconds: float | None = None):
        """Initialize RateLimitError.

        Args:
            message: Error description from the provider.
            retry_after_seconds: Seconds the provider asked us to wait.
        """
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class AuthenticationError(ProviderError):
    """OPENAI_API_KEY is missing, invalid or revoked."""

    pass


class ModelNotFoundError(ProviderError):
    """A model named in the routing table does not exist for this key."""

    pass


class ContentFilterError(ProviderError):
    """The résumé or an answer tripped the provider's safety filter."""

    pass


class ContextLengthError(ProviderError):
    """Prompt exceeded the model's context window.

    Usually a very long résumé paste; the caller truncates rather than retries.
    """

    pass


class TransientError(ProviderError):
    """Connection error, timeout or 5xx response.

    The only category collaborators retry.
    """

    pass
