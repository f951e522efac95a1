"""Abstract base class and types for LLM providers.

LLMProvider interface with the TaskType enum, message types and JSON mode.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from profile_builder.providers.config import ProviderConfig


class TaskType(Enum):
    """Task types for model routing.

    One value per collaborator call the pipeline makes.
    """

    PROFILE_PARSING = "profile_parsing"
    PROFILE_TYPE_DETECTION = "profile_type_detection"
    SKILL_QUESTION = "skill_question"
    SKILL_ASSESSMENT = "skill_assessment"
    FOLLOWUP_QUESTIONS = "followup_questions"
    PROFILE_IMPROVEMENT = "profile_improvement"
    PROFILE_SCORING = "profile_scoring"


@dataclass
class LLMMessage:
    """Provider-agnostic message format.

    Attributes:
            role: Message role ("system", "user", "assistant").
            content: Text content.
    """

    role: str
    content: str


@dataclass
class LLMResponse:
    """Provider-agnostic response format.

    Attributes:
            content: Text response.
            model: Actual model used (for logging).
            input_tokens: Number of input tokens used.
            output_tokens: Number of output tokens generated.
            finish_reason: Why generation stopped ("stop", "length").
            latency_ms: Response time in milliseconds.
    """

    content: str | None
    model: str
    input_tokens: int
    output_tokens: int
    finish_reason: str
    latency_ms: float


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    def __init__(self, config: "ProviderConfig") -> None:
        """Initialize with provider configuration.

        Args:
                config: Provider configuration including API keys and defaults.
        """
        self.config = config

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider identifier (e.g., 'openai', 'mock')."""
        ...

    @abstractmethod
    async def complete(
        self,
        messages: list[LLMMessage],
        task: TaskType,
        max_tokens: int | None = None,
        temperature: float | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Generate a completion.

        Args:
                messages: Conversation history as list of LLMMessage.
                task: Task type for model routing.
                max_tokens: Override default max tokens.
                temperature: Override default temperature.
                json_mode: If True, enforce JSON output format.

        Returns:
                LLMResponse with content.

        Raises:
                ProviderError: On API failure.
                TransientError: On connection failures, timeouts and 5xx
                        responses. Callers decide whether to retry.
        """
        ...

    @abstractmethod
    def get_model_for_task(self, task: TaskType) -> str:
        """Return the model identifier for a given task.

        Args:
                task: The task type to get the model for.

        Returns:
                Model identifier string (e.g., "gpt-4o-mini").
        """
        ...
