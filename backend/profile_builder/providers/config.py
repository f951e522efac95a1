"""LLM settings for the pipeline collaborators.

ProviderConfig is the part of application Settings the provider layer
reads. It picks the adapter that answers collaborator calls and carries
the retry policy wrapped around each call.
"""

from dataclasses import dataclass

from profile_builder.core.config import Settings


@dataclass
class ProviderConfig:
    """Provider selection and call policy for collaborator completions.

    Attributes:
        llm_provider: "openai", or "mock" for offline runs.
        openai_api_key: OpenAI API key (None when unset).
        openai_model_routing: Task name to model overrides, merged over
            the adapter's routing table.
        default_max_tokens: Output cap when a call does not set one.
        default_temperature: Sampling temperature when a call does not set one.
        max_retries: Extra attempts after a transient failure.
        retry_base_delay_ms: First backoff delay.
        retry_max_delay_ms: Backoff ceiling.
    """

    llm_provider: str = "openai"
    openai_api_key: str | None = None
    openai_model_routing: dict[str, str] | None = None

    default_max_tokens: int = 4096
    default_temperature: float = 0.7

    # Retry policy: one retry of a transient failure, then give up
    max_retries: int = 1
    retry_base_delay_ms: int = 1000
    retry_max_delay_ms: int = 8000

    @classmethod
    def from_env(cls, app_settings: Settings | None = None) -> "ProviderConfig":
        """Build the collaborator provider config from application settings.

        Reads a fresh Settings by default, so both the process environment
        and the .env file are honoured.

        Args:
            app_settings: Settings to read instead of loading them.

        Returns:
            ProviderConfig with provider selection, key and retry policy.
        """
        source = app_settings if app_settings is not None else Settings()
        return cls(
            llm_provider=source.llm_provider,
            openai_api_key=source.openai_api_key or None,
            default_max_tokens=source.default_max_tokens,
            default_temperature=source.default_temperature,
            max_retries=source.collaborator_max_retries,
        )
