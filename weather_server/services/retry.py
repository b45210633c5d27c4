"""
Retry engine - exponential backoff with jitter for transient failures.

States:
- ATTEMPTING: An attempt is in flight
- SUCCEEDED: An attempt returned a result
- FAILED: A non-retryable error, or a retryable one with no budget left

Transitions:
- ATTEMPTING(n) → SUCCEEDED: On success
- ATTEMPTING(n) → FAILED: Non-retryable error, or n == max_retries
- ATTEMPTING(n) → ATTEMPTING(n + 1): After sleeping 2^n * base * U(0.5, 1.0)

Jitter scales each delay by a factor in [0.5, 1.0]; it never lengthens it.
"""

import asyncio
import random
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from weather_server.services.errors import is_retryable_error

T = TypeVar("T")

JITTER_MIN = 0.5
JITTER_MAX = 1.0


class RetryState(str, Enum):
    """Retry loop states."""

    ATTEMPTING = "ATTEMPTING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@dataclass
class RetryPolicy:
    """Configuration for the retry loop."""

    max_retries: int = 3  # Retries after the first attempt
    base_delay: float = 1.0  # Seconds per backoff unit

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")


@dataclass(frozen=True)
class RetryAttempt:
    """Backoff scheduled after a failed attempt."""

    attempt_number: int  # 0-indexed attempt that just failed
    base_delay: float
    jittered_delay: float
    error: BaseException


def backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    rng: Callable[[float, float], float] = random.uniform,
) -> tuple[float, float]:
    """
    Compute the backoff after a failed attempt.

    Returns:
        (deterministic delay, jittered delay) in seconds
    """
    base = (2**attempt) * base_delay
    return base, base * rng(JITTER_MIN, JITTER_MAX)


class RetryExecutor:
    """
    Run an async operation under a retry policy.

    Usage:
        executor = RetryExecutor(RetryPolicy(max_retries=3), name="NOAA")
        data = await executor.run(lambda: fetch_json(url))

    The last error is re-raised unchanged once the loop gives up.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        name: str = "operation",
        classify: Callable[[BaseException], bool] = is_retryable_error,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[float, float], float] = random.uniform,
        on_retry: Callable[[RetryAttempt], None] | None = None,
    ):
        self.policy = policy or RetryPolicy()
        self.name = name
        self._classify = classify
        self._sleep = sleep
        self._rng = rng
        self._on_retry = on_retry

    def next_state(self, error: BaseException, attempt: int) -> RetryState:
        """State after attempt number `attempt` failed with `error`."""
        if not self._classify(error):
            return RetryState.FAILED
        if attempt >= self.policy.max_retries:
            logger.warning(
                f"[{self.name}] Giving up after {attempt + 1} attempts: "
                f"{type(error).__name__}"
            )
            return RetryState.FAILED
        return RetryState.ATTEMPTING

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Execute operation, retrying transient failures with backoff."""
        attempt = 0
        while True:
            try:
                result = await operation()
            except Exception as e:
                error = e
                state = self.next_state(error, attempt)
            else:
                state = RetryState.SUCCEEDED

            if state is RetryState.SUCCEEDED:
                if attempt:
                    logger.info(f"[{self.name}] Succeeded after {attempt + 1} attempts")
                return result
            if state is RetryState.FAILED:
                raise error

            base, delay = backoff_delay(attempt, self.policy.base_delay, self._rng)
            retry = RetryAttempt(
                attempt_number=attempt,
                base_delay=base,
                jittered_delay=delay,
                error=error,
            )
            logger.warning(
                f"[{self.name}] Attempt {attempt + 1} failed with "
                f"{type(error).__name__}, retrying in {delay:.2f}s"
            )
            if self._on_retry:
                self._on_retry(retry)

            await self._sleep(delay)
            attempt += 1


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy | None = None,
    name: str = "operation",
) -> T:
    """Shortcut for a one-off RetryExecutor run."""
    return await RetryExecutor(policy, name=name).run(operation)
