"""Retry policy for collaborator calls.

A collaborator call gets config.max_retries extra attempts (one by
default) when the provider fails transiently. Delays grow exponentially
from retry_base_delay_ms with up to 10% jitter, capped at
retry_max_delay_ms. A provider retry hint, when present, replaces the
computed delay.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

import structlog

from profile_builder.providers.errors import TransientError

__all__ = ["with_retries"]

if TYPE_CHECKING:
    from profile_builder.providers.config import ProviderConfig

logger = structlog.get_logger()

T = TypeVar("T")


def _backoff_seconds(attempt: int, config: "ProviderConfig", error: Exception) -> float:
    hint = getattr(error, "retry_after_seconds", None)
    if hint:
        return hint
    base_ms = config.retry_base_delay_ms * (2**attempt)
    jitter_ms = random.uniform(0, base_ms * 0.1)  # nosec B311
    return min(base_ms + jitter_ms, config.retry_max_delay_ms) / 1000


async def with_retries(
    func: Callable[[], Awaitable[T]],
    config: "ProviderConfig",
    retryable_errors: tuple[type[Exception], ...] = (TransientError,),
) -> T:
    """Run one collaborator call under the retry policy.

    Args:
        func: Zero-argument coroutine factory; called once per attempt.
        config: Supplies max_retries and the backoff bounds.
        retryable_errors: Errors worth another attempt. Anything else
            propagates from the first attempt.

    Returns:
        The first successful result.

    Raises:
        The last retryable error once every attempt has failed.
    """
    attempts = config.max_retries + 1
    for attempt in range(attempts):
        try:
            return await func()
        except retryable_errors as e:
            if attempt + 1 == attempts:
                raise
            delay = _backoff_seconds(attempt, config, e)
            logger.warning(
                "provider_retry",
                attempt=attempt + 1,
                max_attempts=attempts,
                error_type=type(e).__name__,
                delay_seconds=round(delay, 2),
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Retry loop exited without error or result")
