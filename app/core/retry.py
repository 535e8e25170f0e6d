"""Shared retry/backoff policy for provider calls.

The same policy object is injected into the generation call and the research
planning call so that retryable-error detection and backoff stay in one place.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# Substrings (lowercased) that mark an error as transient
RETRYABLE_SIGNALS: tuple[str, ...] = (
    "429",
    "503",
    "504",
    "529",
    "rate limit",
    "rate_limit",
    "overloaded",
    "service unavailable",
    "unavailable",
    "gateway timeout",
    "timeout",
    "timed out",
    "temporarily",
    "resource exhausted",
    "resource_exhausted",
)


def is_retryable_error(error: BaseException) -> bool:
    """Return True iff the error looks like rate limiting or a transient outage."""
    if isinstance(error, asyncio.CancelledError):
        return False

    status_code = getattr(error, "status_code", None)
    if status_code in (429, 503, 504, 529):
        return True

    text = f"{type(error).__name__} {error}".lower()
    return any(signal in text for signal in RETRYABLE_SIGNALS)


@dataclass
class RetryPolicy:
    """Exponential backoff: ``base_delay * 2 ** attempt`` between attempts."""

    max_attempts: int = 3
    base_delay: float = 1.0
    is_retryable: Callable[[BaseException], bool] = is_retryable_error
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given zero-based attempt."""
        return self.base_delay * (2**attempt)

    async def run(self, fn: Callable[[], Awaitable[T]], operation: str = "provider call") -> T:
        """
        Call ``fn`` until it succeeds, a non-retryable error occurs, or
        attempts are exhausted. The last error is re-raised.

        Args:
            fn: Zero-argument coroutine factory (called once per attempt)
            operation: Label used in log lines

        Returns:
            Whatever ``fn`` returns on the first successful attempt
        """
        last_error: BaseException = RuntimeError(f"{operation} was never attempted")

        for attempt in range(self.max_attempts):
            try:
                return await fn()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                retryable = self.is_retryable(e)
                logger.warning(
                    f"{operation} attempt {attempt + 1}/{self.max_attempts} failed "
                    f"({type(e).__name__}: {e}), retryable={retryable}"
                )
                if not retryable or attempt >= self.max_attempts - 1:
                    break
                delay = self.delay_for(attempt)
                logger.info(f"{operation}: retrying in {delay}s")
                await self.sleep(delay)

        raise last_error
