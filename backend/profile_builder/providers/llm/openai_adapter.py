"""OpenAI GPT LLM adapter.

Provider-specific adapter for OpenAI chat completions.
"""

import contextlib
import time
from typing import TYPE_CHECKING

import openai
import structlog
from openai import AsyncOpenAI

from profile_builder.providers.errors import (
    AuthenticationError,
    ContentFilterError,
    ContextLengthError,
    ModelNotFoundError,
    ProviderError,
    RateLimitError,
    TransientError,
)
from profile_builder.providers.llm.base import (
    LLMMessage,
    LLMProvider,
    LLMResponse,
    TaskType,
)

if TYPE_CHECKING:
    from profile_builder.providers.config import ProviderConfig

logger = structlog.get_logger()


# Structured extraction and short question generation run on the small
# model; the merge and scoring calls that rewrite prose use the large one.
DEFAULT_OPENAI_ROUTING: dict[str, str] = {
    "profile_parsing": "gpt-4o-mini",
    "profile_type_detection": "gpt-4o-mini",
    "skill_question": "gpt-4o-mini",
    "skill_assessment": "gpt-4o-mini",
    "followup_questions": "gpt-4o-mini",
    "profile_improvement": "gpt-4o",
    "profile_scoring": "gpt-4o",
}

# Fallback if task type not in routing table
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


def _classify_openai_error(error: Exception) -> ProviderError:
    """Map OpenAI SDK exceptions to internal error taxonomy.

    Returns a ProviderError subclass instance (does not raise).
    The caller is responsible for raising via ``raise _classify_openai_error(e) from e``.
    """
    if isinstance(error, openai.RateLimitError):
        retry_after = None
        if hasattr(error, "response") and error.response is not None:
            retry_header = error.response.headers.get("retry-after")
            if retry_header is not None:
                with contextlib.suppress(ValueError):
                    retry_after = float(retry_header)
        return RateLimitError(str(error), retry_after_seconds=retry_after)

    if isinstance(error, openai.AuthenticationError):
        return AuthenticationError(str(error))

    if isinstance(error, openai.BadRequestError):
        error_msg = str(error).lower()
        if "context_length" in error_msg:
            return ContextLengthError(str(error))
        if "content_policy" in error_msg:
            return ContentFilterError(str(error))
        return ProviderError(str(error))

    # APITimeoutError is a subclass of APIConnectionError
    if isinstance(error, (openai.APIConnectionError, openai.InternalServerError)):
        return TransientError(str(error))

    if isinstance(error, openai.NotFoundError):
        return ModelNotFoundError(str(error))

    # Remaining 5xx codes (502, 503, 504) surface as plain APIStatusError
    if isinstance(error, openai.APIStatusError) and error.status_code >= 500:
        return TransientError(str(error))

    return ProviderError(str(error))


class OpenAIAdapter(LLMProvider):
    """OpenAI GPT adapter using OpenAI SDK."""

    @property
    def provider_name(self) -> str:
        """Return 'openai'."""
        return "openai"

    def __init__(self, config: "ProviderConfig") -> None:
        """Initialize OpenAI adapter.

        Args:
            config: Provider configuration with OpenAI API key.
        """
        super().__init__(config)
        self.client = AsyncOpenAI(api_key=config.openai_api_key)
        # Config routing overrides defaults
        self.model_routing = {**DEFAULT_OPENAI_ROUTING}
        if config.openai_model_routing:
            self.model_routing.update(config.openai_model_routing)

    async def complete(
        self,
        messages: list[LLMMessage],
        task: TaskType,
        max_tokens: int | None = None,
        temperature: float | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Generate completion using OpenAI GPT.

        Args:
            messages: Conversation history as list of LLMMessage.
            task: Task type for model routing.
            max_tokens: Override default max tokens.
            temperature: Override default temperature.
            json_mode: If True, enforce JSON output format.

        Returns:
            LLMResponse with content.
        """
        model = self.get_model_for_task(task)
        api_messages = [{"role": msg.role, "content": msg.content} for msg in messages]

        extra_kwargs: dict = {}
        if json_mode:
            extra_kwargs["response_format"] = {"type": "json_object"}

        logger.info(
            "llm_request_start",
            provider="openai",
            model=model,
            task=task.value,
            message_count=len(messages),
        )

        start_time = time.monotonic()

        try:
            response = await self.client.chat.completions.create(
                model=model,
                max_tokens=max_tokens
                if max_tokens is not None
                else self.config.default_max_tokens,
                temperature=temperature
                if temperature is not None
                else self.config.default_temperature,
                messages=api_messages,
                **extra_kwargs,
            )
        except openai.APIError as e:
            logger.error(
                "llm_request_failed",
                provider="openai",
                model=model,
                task=task.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise _classify_openai_error(e) from e

        latency_ms = (time.monotonic() - start_time) * 1000
        choice = response.choices[0]

        logger.info(
            "llm_request_complete",
            provider="openai",
            model=model,
            task=task.value,
            input_tokens=response.usage.prompt_tokens,
            output_tokens=response.usage.completion_tokens,
            latency_ms=latency_ms,
        )

        return LLMResponse(
            content=choice.message.content,
            model=model,
            input_tokens=response.usage.prompt_tokens,
            output_tokens=response.usage.completion_tokens,
            finish_reason=choice.finish_reason,
            latency_ms=latency_ms,
        )

    def get_model_for_task(self, task: TaskType) -> str:
        """Get model for task using routing table.

        Args:
            task: The task type to get the model for.

        Returns:
            Model identifier string (e.g., "gpt-4o").
        """
        return self.model_routing.get(task.value, DEFAULT_OPENAI_MODEL)
