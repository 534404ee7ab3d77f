"""
Retry controller with bounded exponential backoff.

``with_retry`` wraps one request attempt and returns a tagged ``Result``
instead of raising: an exhausted or non-recoverable request becomes an
``Err`` holding the last error, which the orchestrator records on the
owning fragments.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from epub_translator.config import MAX_TRANSLATION_ATTEMPTS, RETRY_BASE_DELAY, RETRY_MAX_DELAY
from epub_translator.core.epub.result import Ok, Err, Result
from epub_translator.core.llm.exceptions import LLMError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts, the first one included
        initial_delay: Delay in seconds before the second attempt
        max_delay: Cap on any single delay
        backoff_factor: Multiplier applied to the delay after each attempt
        jitter: Random extra delay as a fraction of the computed delay (0.0-1.0)
    """
    max_attempts: int = MAX_TRANSLATION_ATTEMPTS
    initial_delay: float = RETRY_BASE_DELAY
    max_delay: float = RETRY_MAX_DELAY
    backoff_factor: float = 2.0
    jitter: float = 0.0


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Delay to wait after failed attempt number ``attempt`` (1-based)."""
    delay = config.initial_delay * (config.backoff_factor ** (attempt - 1))
    delay = min(delay, config.max_delay)
    if config.jitter > 0:
        delay += delay * config.jitter * random.random()
    return delay


def is_retryable(error: Exception) -> bool:
    """Backend errors carry their own verdict; anything else is treated as transient."""
    if isinstance(error, LLMError):
        return error.recoverable
    return True


async def with_retry(
    attempt: Callable[[], Awaitable[Any]],
    config: Optional[RetryConfig] = None,
    *,
    operation_id: str = "request",
    on_retry: Optional[Callable[[Exception, int, float], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Result:
    """Run ``attempt`` until it succeeds or the attempt budget is spent.

    Args:
        attempt: Zero-argument coroutine factory performing one request
        config: Retry policy (defaults from configuration)
        operation_id: Label used in log messages
        on_retry: Called as (error, attempt_number, delay) before each wait
        sleep: Awaitable used for the backoff delay (injectable for tests)

    Returns:
        Ok(value) on success, Err(last_error) once attempts are exhausted or
        the error is not recoverable.
    """
    config = config or RetryConfig()
    attempt_number = 0

    while True:
        attempt_number += 1
        try:
            value = await attempt()
        except Exception as error:
            if not is_retryable(error):
                logger.error(f"Non-recoverable error in {operation_id}: {error}")
                return Err(error)

            if attempt_number >= config.max_attempts:
                logger.warning(
                    f"Retry exhausted for {operation_id} after {attempt_number} attempts: {error}"
                )
                return Err(error)

            delay = calculate_delay(attempt_number, config)
            logger.info(
                f"Attempt {attempt_number}/{config.max_attempts} failed for {operation_id}: "
                f"{type(error).__name__}: {error}. Retrying in {delay:.2f}s..."
            )
            if on_retry:
                try:
                    on_retry(error, attempt_number, delay)
                except Exception as callback_error:
                    logger.warning(f"Error in on_retry callback: {callback_error}")

            if delay > 0:
                await sleep(delay)
            continue

        if attempt_number > 1:
            logger.info(f"Operation {operation_id} succeeded after {attempt_number} attempts")
        return Ok(value)
