"""LLM provider module.

LLM provider interface and adapters.
"""

from profile_builder.providers.llm.base import (
    LLMMessage,
    LLMProvider,
    LLMResponse,
    TaskType,
)
from profile_builder.providers.llm.mock_adapter import MockLLMProvider
from profile_builder.providers.llm.openai_adapter import OpenAIAdapter

__all__ = [
    # Base types
    "LLMMessage",
    "LLMProvider",
    "LLMResponse",
    "TaskType",
    # Adapters
    "MockLLMProvider",
    "OpenAIAdapter",
]
