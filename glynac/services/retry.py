"""
Retry/backoff policy for transport calls.

Rules:
- 4xx client errors are never retried, except 408 and 429 (limited cap)
- network failures and 5xx are retried up to min(max_retries, policy cap)
- delay = base * 2^attempt_index, capped at the policy ceiling
- cancellation is terminal; a timeout is terminal unless the request opted in
  with retry_on_timeout, in which case it is treated like a 408
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from glynac.services.errors import (
    ApiError,
    ClientError,
    NetworkError,
    RequestCancelledError,
    RequestTimeoutError,
    ServerError,
)

T = TypeVar("T")

LIMITED_RETRY_STATUSES = frozenset({408, 429})

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryDecision:
    retry: bool
    delay: float = 0.0


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for one class of calls (queries or mutations)."""

    name: str
    max_attempts: int = 3  # cap for network / 5xx failures
    limited_attempts: int = 2  # cap for 408 / 429
    max_delay: float = 30.0  # backoff ceiling in seconds

    def retry_limit(
        self,
        error: BaseException,
        max_retries: int,
        retry_on_timeout: bool = False,
    ) -> int:
        """How many retries this kind of failure is allowed in total."""
        if isinstance(error, RequestCancelledError):
            return 0

        if isinstance(error, RequestTimeoutError):
            if retry_on_timeout:
                return min(max_retries, self.limited_attempts)
            return 0

        if isinstance(error, ClientError):
            if error.status in LIMITED_RETRY_STATUSES:
                return min(max_retries, self.limited_attempts)
            return 0

        if isinstance(error, (NetworkError, ServerError)):
            return min(max_retries, self.max_attempts)

        return 0

    def backoff(self, attempt_index: int, base_delay: float) -> float:
        """Exponential delay for the given zero-based retry index."""
        return min(base_delay * (2**attempt_index), self.max_delay)

    def decide(
        self,
        error: BaseException,
        failures: int,
        max_retries: int,
        base_delay: float,
        retry_on_timeout: bool = False,
    ) -> RetryDecision:
        """
        Decide whether to retry after `failures` failed attempts.

        Args:
            error: The failure of the most recent attempt
            failures: Number of failed attempts so far (>= 1)
            max_retries: Caller-configured retry budget
            base_delay: Base delay in seconds
            retry_on_timeout: Whether a timeout may be retried

        Returns:
            RetryDecision with the delay before the next attempt
        """
        limit = self.retry_limit(error, max_retries, retry_on_timeout)
        if failures > limit:
            return RetryDecision(retry=False)
        return RetryDecision(retry=True, delay=self.backoff(failures - 1, base_delay))

    async def execute(
        self,
        call: Callable[[], Awaitable[T]],
        *,
        max_retries: int,
        base_delay: float,
        retry_on_timeout: bool = False,
        label: str = "request",
        sleep: Sleep = asyncio.sleep,
    ) -> T:
        """
        Run `call`, retrying according to this policy.

        The last error is re-raised unchanged once retries are exhausted.
        """
        failures = 0
        while True:
            try:
                return await call()
            except ApiError as e:
                failures += 1
                decision = self.decide(
                    e,
                    failures,
                    max_retries=max_retries,
                    base_delay=base_delay,
                    retry_on_timeout=retry_on_timeout,
                )
                if not decision.retry:
                    if failures > 1:
                        logger.error(
                            f"{label} failed after {failures} attempts: {e.message}"
                        )
                    raise

                limit = self.retry_limit(e, max_retries, retry_on_timeout)
                logger.warning(
                    f"Retrying {label} ({failures}/{limit}) in "
                    f"{decision.delay:.2f}s: {e.message}"
                )
                await sleep(decision.delay)


QUERY_RETRY_POLICY = RetryPolicy(name="query", max_attempts=3, max_delay=30.0)
MUTATION_RETRY_POLICY = RetryPolicy(name="mutation", max_attempts=2, max_delay=10.0)
