"""Mock LLM provider for testing.

MockLLMProvider lets collaborator and pipeline tests run without hitting
real LLM APIs.
"""

from typing import Any

from profile_builder.providers.llm.base import (
    LLMMessage,
    LLMProvider,
    LLMResponse,
    TaskType,
)


class MockLLMProvider(LLMProvider):
    """Mock provider for testing.

    Attributes:
        responses: Pre-configured responses keyed by TaskType.
        errors: Pre-configured exceptions keyed by TaskType. Each entry is a
            list consumed one per call, so a test can fail the first attempt
            and succeed on the retry.
        calls: Record of all method invocations for test assertions.
        last_task: The most recent TaskType used in a call (for quick assertions).
    """

    @property
    def provider_name(self) -> str:
        """Return 'mock' for testing."""
        return "mock"

    def __init__(self, responses: dict[TaskType, str] | None = None) -> None:
        """Initialize mock provider with optional pre-configured responses.

        Args:
            responses: Dict mapping TaskType to response content. If not provided
                for a task, returns a default "Mock response for {task}" string.
        """
        # No config needed for the mock
        self.responses: dict[TaskType, str] = dict(responses) if responses else {}
        self.errors: dict[TaskType, list[Exception]] = {}
        self.calls: list[dict[str, Any]] = []
        self.last_task: TaskType | None = None

    def set_response(self, task: TaskType, content: str) -> None:
        """Set or update the response for a specific task type.

        Args:
            task: The TaskType to configure.
            content: The response content to return for this task.
        """
        self.responses[task] = content

    def set_error(self, task: TaskType, *errors: Exception) -> None:
        """Queue exceptions to raise for a task, one per call.

        Args:
            task: The TaskType to configure.
            errors: Exceptions raised by successive calls before the
                configured response is returned.
        """
        self.errors[task] = list(errors)

    async def complete(
        self,
        messages: list[LLMMessage],
        task: TaskType,
        max_tokens: int | None = None,
        temperature: float | None = None,
        json_mode: bool = False,
    ) -> LLMResponse:
        """Generate a mock completion.

        Records the call for test assertions, raises the next queued error
        for the task if any, and otherwise returns a pre-configured or
        default response.
        """
        self.calls.append(
            {
                "method": "complete",
                "messages": messages,
                "task": task,
                "kwargs": {
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                    "json_mode": json_mode,
                },
            }
        )
        self.last_task = task

        pending_errors = self.errors.get(task)
        if pending_errors:
            raise pending_errors.pop(0)

        content = self.responses.get(task, f"Mock response for {task.value}")

        return LLMResponse(
            content=content,
            model="mock-model",
            input_tokens=100,
            output_tokens=50,
            finish_reason="stop",
            latency_ms=10,
        )

    def get_model_for_task(self, _task: TaskType) -> str:
        """Return 'mock-model' for any task."""
        return "mock-model"

    def assert_called_with_task(self, task: TaskType) -> None:
        """Test helper to verify a task was called.

        Args:
            task: The TaskType that should have been called.

        Raises:
            AssertionError: If the task was not called.
        """
        tasks_called = [c["task"] for c in self.calls]
        assert task in tasks_called, f"Expected {task}, got {tasks_called}"

    def calls_for(self, task: TaskType) -> list[dict[str, Any]]:
        """Return the recorded calls for a task."""
        return [c for c in self.calls if c["task"] == task]
