# src/chunkwise/engine/executors.py
"""Transform and sink executors.

Wrap collaborator calls with retry and classification so the chunk loop
only ever sees tagged results (TransformResult) or a single commit error
type (SinkCommitError). Collaborator exceptions never escape these
executors except as data.
"""

from __future__ import annotations

from typing import Any

import structlog

from chunkwise.contracts import (
    CommitContext,
    FaultVerdict,
    SinkCommitError,
    TransformResult,
)
from chunkwise.engine.fault_policy import FaultPolicy
from chunkwise.engine.retry import MaxRetriesExceeded
from chunkwise.plugins.protocols import SinkProtocol, TransformProtocol
from chunkwise.plugins.sentinels import DROP

slog = structlog.get_logger(__name__)


class TransformExecutor:
    """Applies the transform to one record under the fault policy."""

    def __init__(self, transform: TransformProtocol, policy: FaultPolicy) -> None:
        self._transform = transform
        self._policy = policy

    def execute(self, record: Any) -> TransformResult:
        """Transform one record, retrying transient failures in place.

        Returns:
            ok/dropped for successful applies; skipped or fatal per the
            policy's verdict once retries are resolved.
        """
        attempts = 0

        def attempt_once() -> Any:
            nonlocal attempts
            attempts += 1
            return self._transform.apply(record)

        try:
            output = self._policy.retry_manager.execute_with_retry(
                attempt_once,
                is_retryable=self._policy.is_retryable,
                on_retry=lambda attempt, error: self._policy.on_retry(record, attempt, error),
            )
        except MaxRetriesExceeded as exc:
            error = exc.last_error
            category = self._policy.classify(error)
            # Exhausted (or abandoned) retries are judged as the final attempt
            verdict = self._policy.decide(category, attempt=self._policy.config.max_attempts)
            return self._failure(error, category, verdict, attempts)
        except Exception as exc:
            category = self._policy.classify(exc)
            verdict = self._policy.decide(category, attempt=attempts)
            return self._failure(exc, category, verdict, attempts)

        if output is DROP:
            return TransformResult.dropped(attempts=attempts)
        if isinstance(output, TransformResult):
            return output
        return TransformResult.ok(output, attempts=attempts)

    @staticmethod
    def _failure(error: BaseException, category: str, verdict: FaultVerdict, attempts: int) -> TransformResult:
        if verdict is FaultVerdict.SKIP:
            return TransformResult.skipped(error, category, attempts=attempts)
        return TransformResult.fatal(error, category, attempts=attempts)


class SinkExecutor:
    """Commits one chunk's batch, retrying the whole batch on transient errors."""

    def __init__(self, sink: SinkProtocol, policy: FaultPolicy) -> None:
        self._sink = sink
        self._policy = policy

    def commit(self, batch: list[Any], context: CommitContext) -> int:
        """Commit a batch atomically.

        Returns:
            Number of attempts it took

        Raises:
            SinkCommitError: If the batch could not be committed
        """
        attempts = 0

        def attempt_once() -> None:
            nonlocal attempts
            attempts += 1
            self._sink.commit(batch, context)

        def on_retry(attempt: int, error: BaseException) -> bool:
            slog.warning(
                "sink_commit_retry",
                execution_id=context.execution_id,
                partition=context.partition_index,
                chunk_sequence=context.chunk_sequence,
                attempt=attempt,
                error_type=type(error).__name__,
            )
            return True

        try:
            self._policy.retry_manager.execute_with_retry(
                attempt_once,
                is_retryable=self._policy.is_retryable,
                on_retry=on_retry,
            )
        except MaxRetriesExceeded as exc:
            raise SinkCommitError(context.chunk_sequence, exc.last_error, attempts=attempts) from exc.last_error
        except Exception as exc:
            raise SinkCommitError(context.chunk_sequence, exc, attempts=attempts) from exc
        return attempts
