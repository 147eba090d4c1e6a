# tests/engine/test_retry.py
"""Tests for RetryManager."""

import pytest

from chunkwise.contracts import BackoffMode, FaultPolicyConfig
from chunkwise.engine.retry import MaxRetriesExceeded, RetryConfig, RetryManager


class _Sleeps:
    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class TestRetryManager:
    """Retry logic with tenacity."""

    def test_retry_on_retryable_error(self) -> None:
        manager = RetryManager(RetryConfig(max_attempts=3, base_delay=0.0), sleep=_Sleeps())

        call_count = 0

        def flaky_operation() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise TimeoutError("Transient error")
            return "success"

        result = manager.execute_with_retry(flaky_operation, is_retryable=lambda e: isinstance(e, TimeoutError))

        assert result == "success"
        assert call_count == 3

    def test_no_retry_on_non_retryable(self) -> None:
        manager = RetryManager(RetryConfig(max_attempts=3, base_delay=0.0), sleep=_Sleeps())

        call_count = 0

        def failing_operation() -> None:
            nonlocal call_count
            call_count += 1
            raise KeyError("Not retryable")

        with pytest.raises(KeyError):
            manager.execute_with_retry(failing_operation, is_retryable=lambda e: isinstance(e, TimeoutError))

        assert call_count == 1

    def test_max_attempts_exceeded(self) -> None:
        manager = RetryManager(RetryConfig(max_attempts=3, base_delay=0.0), sleep=_Sleeps())
        error = TimeoutError("Always fails")

        def always_fails() -> None:
            raise error

        with pytest.raises(MaxRetriesExceeded) as exc_info:
            manager.execute_with_retry(always_fails, is_retryable=lambda e: True)

        assert exc_info.value.attempts == 3
        assert exc_info.value.last_error is error
        assert not exc_info.value.gave_up

    def test_single_attempt_config_never_retries(self) -> None:
        manager = RetryManager(RetryConfig.no_retry(), sleep=_Sleeps())
        calls: list[int] = []

        def fails() -> None:
            calls.append(1)
            raise TimeoutError("once")

        with pytest.raises(MaxRetriesExceeded) as exc_info:
            manager.execute_with_retry(fails, is_retryable=lambda e: True)

        assert len(calls) == 1
        assert exc_info.value.attempts == 1

    def test_on_retry_sees_failed_attempt_numbers(self) -> None:
        manager = RetryManager(RetryConfig(max_attempts=3, base_delay=0.0), sleep=_Sleeps())
        seen: list[tuple[int, str]] = []

        def always_fails() -> None:
            raise TimeoutError(f"failure {len(seen) + 1}")

        def on_retry(attempt: int, error: BaseException) -> bool:
            seen.append((attempt, str(error)))
            return True

        with pytest.raises(MaxRetriesExceeded):
            manager.execute_with_retry(always_fails, is_retryable=lambda e: True, on_retry=on_retry)

        # No hook call after the final attempt
        assert seen == [(1, "failure 1"), (2, "failure 2")]

    def test_on_retry_returning_false_gives_up(self) -> None:
        manager = RetryManager(RetryConfig(max_attempts=5, base_delay=0.0), sleep=_Sleeps())
        calls = 0

        def always_fails() -> None:
            nonlocal calls
            calls += 1
            raise TimeoutError("nope")

        with pytest.raises(MaxRetriesExceeded) as exc_info:
            manager.execute_with_retry(always_fails, is_retryable=lambda e: True, on_retry=lambda attempt, e: attempt < 2)

        assert calls == 2
        assert exc_info.value.gave_up
        assert exc_info.value.attempts == 2
        assert "abandoned" in str(exc_info.value)


def _time_out() -> None:
    raise TimeoutError("x")


class TestBackoff:
    def test_fixed_delay(self) -> None:
        sleeps = _Sleeps()
        manager = RetryManager(RetryConfig(max_attempts=3, base_delay=0.5), sleep=sleeps)

        with pytest.raises(MaxRetriesExceeded):
            manager.execute_with_retry(_time_out, is_retryable=lambda e: True)

        assert sleeps.delays == [0.5, 0.5]

    def test_exponential_delay_is_capped(self) -> None:
        sleeps = _Sleeps()
        config = RetryConfig(
            max_attempts=4,
            backoff=BackoffMode.EXPONENTIAL,
            base_delay=1.0,
            max_delay=3.0,
            exponential_base=2.0,
            jitter=0.0,
        )
        manager = RetryManager(config, sleep=sleeps)

        with pytest.raises(MaxRetriesExceeded):
            manager.execute_with_retry(_time_out, is_retryable=lambda e: True)

        assert sleeps.delays == pytest.approx([1.0, 2.0, 3.0])


class TestRetryConfig:
    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError, match="max_attempts"):
            RetryConfig(max_attempts=0)

    def test_from_fault_policy(self) -> None:
        policy = FaultPolicyConfig(
            retry_limit=2,
            backoff=BackoffMode.EXPONENTIAL,
            initial_delay_seconds=0.25,
            max_delay_seconds=5.0,
            jitter_seconds=0.1,
            exponential_base=3.0,
        )

        config = RetryConfig.from_fault_policy(policy)

        assert config.max_attempts == 3
        assert config.backoff is BackoffMode.EXPONENTIAL
        assert config.base_delay == 0.25
        assert config.max_delay == 5.0
        assert config.jitter == 0.1
        assert config.exponential_base == 3.0
