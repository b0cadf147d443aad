"""
Retry Helper
Exponential-backoff wrapper shared by enrichment and shard generation calls.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

BACKOFF_FACTOR = 1.5


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    label: str,
    max_retries: int = 3,
    initial_delay: float = 2.0,
    on_log: Optional[Callable[[str], None]] = None,
) -> T:
    """
    Awaits ``operation()`` and retries it with exponential backoff on failure.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt.
        label: Human-readable name of the action, used in retry messages.
        max_retries: Retries allowed after the first attempt.
        initial_delay: Seconds to wait before the first retry; grows by 1.5x.
        on_log: Optional sink receiving one message per retry.

    Returns:
        Whatever the operation returns on its first successful attempt.

    Raises:
        Exception: The last attempt's own exception, unwrapped.
    """
    remaining = max_retries
    delay = initial_delay
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as error:
            if remaining <= 0:
                logger.error("Failed %s after %d attempts: %s", label, attempt + 1, error)
                error.add_note(f"{label}: gave up after {attempt + 1} attempts")
                raise

            attempt += 1
            message = f"API 请求失败 ({label})，正在进行第 {attempt} 次重试..."
            logger.warning("%s (%s)", message, error)
            if on_log:
                on_log(message)

            await asyncio.sleep(delay)
            delay *= BACKOFF_FACTOR
            remaining -= 1
