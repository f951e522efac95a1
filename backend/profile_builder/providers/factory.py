"""Provider factory functions.

Singleton access to the configured LLM provider.
"""

from profile_builder.providers.config import ProviderConfig
from profile_builder.providers.llm.base import LLMProvider
from profile_builder.providers.llm.mock_adapter import MockLLMProvider
from profile_builder.providers.llm.openai_adapter import OpenAIAdapter

_llm_provider: LLMProvider | None = None


def get_llm_provider(config: ProviderConfig | None = None) -> LLMProvider:
    """Get or create the LLM provider singleton.

    The first call fixes the configuration; later calls reuse the instance.

    Args:
        config: Optional provider configuration. If None and no provider
            exists, loads from application settings.

    Returns:
        LLMProvider instance.

    Raises:
        ValueError: If the configured provider is unknown.
    """
    global _llm_provider

    if _llm_provider is None:
        if config is None:
            config = ProviderConfig.from_env()

        if config.llm_provider == "openai":
            _llm_provider = OpenAIAdapter(config)
        elif config.llm_provider == "mock":
            _llm_provider = MockLLMProvider()
        else:
            raise ValueError(f"Unknown LLM provider: {config.llm_provider}")

    return _llm_provider


def reset_providers() -> None:
    """Reset provider singletons.

    Used in tests to ensure isolation between test cases.
    """
    global _llm_provider
    _llm_provider = None
