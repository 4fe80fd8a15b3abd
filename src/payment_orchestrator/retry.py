"""
Bounded exponential-backoff retries for calls to volatile external systems.

Every processor call, order-status update and delivery goes through a
``RetryPolicy``. The executor never decides on its own whether an error is
transient: the call site lists the non-retryable error types, and anything
else is retried until the attempt ceiling is reached.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from payment_orchestrator.models.exceptions import ExternalCallFailed

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry configuration for one call site.

    Attempt 1 runs immediately. After failed attempt ``n`` the executor waits
    ``min(initial_interval * backoff_coefficient ** (n - 1), maximum_interval)``
    seconds, so the first retry waits ``initial_interval``.
    """

    initial_interval: float = 1.0
    maximum_interval: float = 60.0
    backoff_coefficient: float = 2.0
    maximum_attempts: int = 5
    non_retryable_errors: tuple[type[BaseException], ...] = ()

    def __post_init__(self) -> None:
        if self.initial_interval <= 0:
            raise ValueError("initial_interval must be positive")
        if self.maximum_interval < self.initial_interval:
            raise ValueError("maximum_interval must be >= initial_interval")
        if self.backoff_coefficient < 1:
            raise ValueError("backoff_coefficient must be >= 1")
        if self.maximum_attempts < 1:
            raise ValueError("maximum_attempts must be >= 1")

    def delay_for_attempt(self, attempt: int) -> float:
        """Seconds to wait after failed attempt ``attempt`` (1-based)."""
        if attempt < 1:
            raise ValueError("attempt numbers start at 1")
        try:
            delay = self.initial_interval * self.backoff_coefficient ** (attempt - 1)
        except OverflowError:
            return self.maximum_interval
        return min(delay, self.maximum_interval)

    def with_non_retryable(self, *error_types: type[BaseException]) -> "RetryPolicy":
        """Return a copy that also refuses to retry ``error_types``."""
        return RetryPolicy(
            initial_interval=self.initial_interval,
            maximum_interval=self.maximum_interval,
            backoff_coefficient=self.backoff_coefficient,
            maximum_attempts=self.maximum_attempts,
            non_retryable_errors=self.non_retryable_errors + error_types,
        )


class RetryExecutor:
    """
    Runs an async operation under a ``RetryPolicy``.

    Waiting between attempts awaits ``sleep`` (``asyncio.sleep`` by default),
    so other orchestration instances on the same loop keep running.
    """

    def __init__(self, sleep: SleepFunc | None = None) -> None:
        self._sleep = sleep or asyncio.sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        *,
        operation_name: str = "external_call",
        **log_context: Any,
    ) -> T:
        """
        Run ``operation`` at most ``policy.maximum_attempts`` times.

        Returns:
            The first successful result.

        Raises:
            ExternalCallFailed: The attempt ceiling was reached; chained to
                the last error.
            Any type in ``policy.non_retryable_errors``: propagated unchanged
                on first occurrence.
        """

        def _log_retry(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "external_call_retrying",
                operation=operation_name,
                attempt=retry_state.attempt_number,
                max_attempts=policy.maximum_attempts,
                next_delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
                error_type=type(error).__name__ if error else None,
                error=str(error) if error else None,
                **log_context,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(policy.maximum_attempts),
            wait=wait_exponential(
                multiplier=policy.initial_interval,
                exp_base=policy.backoff_coefficient,
                max=policy.maximum_interval,
            ),
            # Task cancellation is never a failed attempt.
            retry=retry_if_not_exception_type(
                policy.non_retryable_errors + (asyncio.CancelledError,)
            ),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=False,
        )

        try:
            # Call sites pass plain lambdas returning coroutines, so the
            # await happens here rather than inside tenacity.
            async for attempt in retrying:
                with attempt:
                    return await operation()
        except RetryError as e:
            last_attempt = e.last_attempt
            last_error = last_attempt.exception()
            logger.error(
                "external_call_exhausted",
                operation=operation_name,
                attempts=last_attempt.attempt_number,
                error_type=type(last_error).__name__,
                error=str(last_error),
                **log_context,
            )
            raise ExternalCallFailed(
                operation=operation_name,
                attempts=last_attempt.attempt_number,
                last_error=last_error,
            ) from last_error
