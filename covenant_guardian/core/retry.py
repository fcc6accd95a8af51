"""Bounded retry with exponential backoff for backend and AI calls."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from covenant_guardian.core.config import settings
from covenant_guardian.core.errors import is_retryable_error

logger = structlog.get_logger()

T = TypeVar("T")


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "retrying_call",
        attempt=retry_state.attempt_number,
        error=str(exc) if exc else None,
        error_type=type(exc).__name__ if exc else None,
    )


class RetryPolicy(BaseModel):
    """Exponential backoff: initial_delay * multiplier**(n-1), capped, plus up to 10% jitter."""

    max_attempts: int = Field(default=3, ge=1)
    initial_delay: float = Field(default=1.0, ge=0.0)
    max_delay: float = Field(default=10.0, ge=0.0)
    multiplier: float = Field(default=2.0, ge=1.0)
    jitter: float = Field(default=0.1, ge=0.0, le=1.0)

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        return cls(
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            initial_delay=settings.RETRY_INITIAL_DELAY_SECONDS,
            max_delay=settings.RETRY_MAX_DELAY_SECONDS,
            multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
        )

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        return cls(max_attempts=1, initial_delay=0.0, max_delay=0.0)

    def delay_for_attempt(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-based), without jitter."""
        return min(self.initial_delay * self.multiplier ** (attempt - 1), self.max_delay)

    def retrying(
        self,
        should_retry: Callable[[BaseException], bool] = is_retryable_error,
    ) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=(
                wait_exponential(
                    multiplier=self.initial_delay,
                    exp_base=self.multiplier,
                    max=self.max_delay,
                )
                + wait_random(0, self.initial_delay * self.jitter)
            ),
            retry=retry_if_exception(should_retry),
            before_sleep=_log_retry,
            reraise=True,
        )

    async def call(
        self,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        should_retry: Callable[[BaseException], bool] = is_retryable_error,
        **kwargs: Any,
    ) -> T:
        """Await ``fn`` until it succeeds, fails non-retryably, or attempts run out.

        The last exception is re-raised unchanged.
        """
        async for attempt in self.retrying(should_retry):
            with attempt:
                return await fn(*args, **kwargs)
        raise RuntimeError("retry loop exited without a result")  # pragma: no cover
