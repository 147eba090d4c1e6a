# src/chunkwise/engine/retry.py
"""RetryManager: Retry logic with tenacity integration.

Provides configurable retry behavior for record transforms and chunk
commits:
- Fixed delay, or exponential backoff with jitter
- Configurable max attempts
- Retryable error filtering
- An on_retry hook that may end retries early
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
    wait_fixed,
)

from chunkwise.contracts import BackoffMode

if TYPE_CHECKING:
    from chunkwise.contracts import FaultPolicyConfig

T = TypeVar("T")


class MaxRetriesExceeded(Exception):
    """Raised when max retry attempts are exceeded.

    gave_up is True when the on_retry hook ended retries before the
    attempt budget was spent.
    """

    def __init__(self, attempts: int, last_error: BaseException, *, gave_up: bool = False) -> None:
        self.attempts = attempts
        self.last_error = last_error
        self.gave_up = gave_up
        reason = "Retries abandoned" if gave_up else "Max retries"
        super().__init__(f"{reason} ({attempts}) exceeded: {last_error}")


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    max_attempts is the TOTAL number of tries, not the number of retries.
    So max_attempts=3 means: try, retry, retry (3 total).
    """

    max_attempts: int = 1
    backoff: BackoffMode = BackoffMode.FIXED
    base_delay: float = 1.0  # seconds
    max_delay: float = 60.0  # seconds
    jitter: float = 0.0  # seconds
    exponential_base: float = 2.0  # backoff multiplier

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def no_retry(cls) -> RetryConfig:
        """Factory for no-retry configuration (single attempt)."""
        return cls(max_attempts=1)

    @classmethod
    def from_fault_policy(cls, config: FaultPolicyConfig) -> RetryConfig:
        """Factory from a work unit's FaultPolicyConfig."""
        return cls(
            max_attempts=config.max_attempts,
            backoff=config.backoff,
            base_delay=config.initial_delay_seconds,
            max_delay=config.max_delay_seconds,
            jitter=config.jitter_seconds,
            exponential_base=config.exponential_base,
        )


class RetryManager:
    """Runs an operation under the configured retry policy.

    Uses tenacity for the attempt loop and backoff.

    Example:
        manager = RetryManager(RetryConfig(max_attempts=3))

        result = manager.execute_with_retry(
            operation=lambda: transform.apply(record),
            is_retryable=lambda e: policy.is_retryable(e),
            on_retry=lambda attempt, error: attempt < 2,
        )
    """

    def __init__(self, config: RetryConfig, *, sleep: Callable[[float], None] = time.sleep) -> None:
        """Initialize with config.

        Args:
            config: Retry configuration
            sleep: Sleep function used between attempts (tests pass a no-op)
        """
        self._config = config
        self._sleep = sleep

    @property
    def config(self) -> RetryConfig:
        return self._config

    def _wait(self) -> wait_fixed | wait_exponential_jitter:
        if self._config.backoff == BackoffMode.EXPONENTIAL:
            return wait_exponential_jitter(
                initial=self._config.base_delay,
                max=self._config.max_delay,
                exp_base=self._config.exponential_base,
                jitter=self._config.jitter,
            )
        return wait_fixed(self._config.base_delay)

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        *,
        is_retryable: Callable[[BaseException], bool],
        on_retry: Callable[[int, BaseException], bool] | None = None,
    ) -> T:
        """Execute operation with retry logic.

        Args:
            operation: Operation to execute
            is_retryable: Function to check if error is retryable
            on_retry: Optional hook called before each retry with
                (failed attempt number, error). Returning False gives up.

        Returns:
            Result of operation

        Raises:
            MaxRetriesExceeded: If attempts are exhausted or on_retry gave up
            Exception: If a non-retryable error occurs
        """
        attempt = 0
        last_error: BaseException | None = None
        gave_up = False

        def should_retry(error: BaseException) -> bool:
            return not gave_up and is_retryable(error)

        try:
            for attempt_state in Retrying(
                stop=stop_after_attempt(self._config.max_attempts),
                wait=self._wait(),
                retry=retry_if_exception(should_retry),
                sleep=self._sleep,
                reraise=False,  # We catch RetryError and convert to MaxRetriesExceeded
            ):
                with attempt_state:
                    attempt = attempt_state.retry_state.attempt_number
                    try:
                        return operation()
                    except Exception as e:
                        last_error = e
                        # Only consult the hook when another attempt would follow
                        if on_retry is not None and attempt < self._config.max_attempts and is_retryable(e):
                            gave_up = not on_retry(attempt, e)
                        raise

        except RetryError as e:
            # Retries exhausted - wrap in MaxRetriesExceeded
            final_error = last_error or e.last_attempt.exception()
            assert final_error is not None, "RetryError without exception is impossible"
            raise MaxRetriesExceeded(attempt, final_error) from e

        except Exception as e:
            if gave_up and e is last_error:
                raise MaxRetriesExceeded(attempt, e, gave_up=True) from e
            raise

        # Should not reach here - Retrying always returns or raises
        raise RuntimeError("Unexpected state in retry loop")  # pragma: no cover
