"""Fault policy: classify record errors and decide retry, skip, or fatal.

The decision is a pure function of (category, attempt, retry_limit) over
the configured classification table. Unknown categories fail closed to
FATAL. The skip ceiling is enforced by a SkipCounter shared by every
partition of one execution.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any

import structlog

from chunkwise.contracts import ErrorCategory, FaultPolicyConfig, FaultVerdict
from chunkwise.engine.retry import RetryConfig, RetryManager

slog = structlog.get_logger(__name__)

RetryHook = Callable[[Any, int, BaseException], bool]


class SkipCounter:
    """Thread-safe per-execution skip budget.

    Seeded with the skips already carried by resumed checkpoints so the
    ceiling applies to the logical run, not to each attempt.
    """

    def __init__(self, limit: int, initial: int = 0) -> None:
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        if initial < 0:
            raise ValueError(f"initial must be >= 0, got {initial}")
        self._limit = limit
        self._count = initial
        self._lock = threading.Lock()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    def try_acquire(self) -> bool:
        """Take one skip from the budget. False once the limit is reached."""
        with self._lock:
            if self._count >= self._limit:
                return False
            self._count += 1
            return True


class FaultPolicy:
    """Per-execution fault policy.

    Example:
        policy = FaultPolicy(FaultPolicyConfig(retry_limit=2, skip_limit=10))
        category = policy.classify(error)
        verdict = policy.decide(category, attempt=1)
    """

    def __init__(
        self,
        config: FaultPolicyConfig,
        *,
        skip_counter: SkipCounter | None = None,
        retry_hook: RetryHook | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._skip_counter = skip_counter if skip_counter is not None else SkipCounter(config.skip_limit)
        self._retry_hook = retry_hook
        self._retry_manager = RetryManager(RetryConfig.from_fault_policy(config), sleep=sleep)

    @property
    def config(self) -> FaultPolicyConfig:
        return self._config

    @property
    def skip_counter(self) -> SkipCounter:
        return self._skip_counter

    @property
    def retry_manager(self) -> RetryManager:
        return self._retry_manager

    def classify(self, error: BaseException) -> str:
        """Error category for an exception.

        Resolution order: the exception's own ``category`` attribute, then
        the exception-name table matched along the MRO (most specific
        class first), else "unclassified".
        """
        category = getattr(error, "category", None)
        if isinstance(category, str) and category:
            return category
        for klass in type(error).__mro__:
            mapped = self._config.exception_categories.get(klass.__name__)
            if mapped is not None:
                return mapped
        return ErrorCategory.UNCLASSIFIED.value

    def decide(self, category: str, attempt: int, retry_limit: int | None = None) -> FaultVerdict:
        """Verdict for a failure of ``attempt`` (1-based) in ``category``.

        RETRY is only returned while attempts remain; once exhausted a
        retryable category becomes SKIP if listed in skip_after_retry,
        else FATAL. Categories missing from the table are FATAL.
        """
        limit = self._config.retry_limit if retry_limit is None else retry_limit
        verdict = self._config.classification.get(category, FaultVerdict.FATAL)
        if verdict is not FaultVerdict.RETRY:
            return verdict
        if attempt <= limit:
            return FaultVerdict.RETRY
        if category in self._config.skip_after_retry:
            return FaultVerdict.SKIP
        return FaultVerdict.FATAL

    def is_retryable(self, error: BaseException) -> bool:
        return self._config.classification.get(self.classify(error)) is FaultVerdict.RETRY

    def on_retry(self, record: Any, attempt: int, error: BaseException) -> bool:
        """Called before each retry. Returns False to give up early."""
        slog.debug(
            "record_retry",
            attempt=attempt,
            max_attempts=self._config.max_attempts,
            error_type=type(error).__name__,
            error=str(error),
        )
        if self._retry_hook is None:
            return True
        return self._retry_hook(record, attempt, error)

    def on_skip(self, record: Any, error: BaseException, category: str) -> FaultVerdict:
        """Charge one skip against the execution's budget.

        Returns SKIP while the budget lasts, FATAL once the skip would
        exceed skip_limit.
        """
        if self._skip_counter.try_acquire():
            return FaultVerdict.SKIP
        slog.warning(
            "skip_limit_exceeded",
            skip_limit=self._skip_counter.limit,
            category=category,
            error_type=type(error).__name__,
        )
        return FaultVerdict.FATAL
