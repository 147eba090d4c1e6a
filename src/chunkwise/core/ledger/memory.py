"""Dict-backed execution ledger for tests and embedding.

Same semantics as SQLExecutionLedger, without durability. Every read and
write runs under one reentrant lock, so a checkpoint can never land after
the execution was finished.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import replace

from chunkwise.contracts import (
    ALLOWED_TRANSITIONS,
    BeginResult,
    CheckpointState,
    ExecutionNotFoundError,
    ExecutionRecord,
    ExecutionStatus,
    InvalidTransitionError,
    LedgerIntegrityError,
    PartitionPlan,
    PendingSkip,
    RunIdentity,
    SkipRecord,
)
from chunkwise.core.canonical import canonical_json
from chunkwise.core.ledger._helpers import generate_id, now


class InMemoryExecutionLedger:
    """Execution ledger that lives only as long as the process."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._executions: dict[str, ExecutionRecord] = {}
        self._by_identity: dict[str, list[str]] = {}
        self._checkpoints: dict[str, dict[int, CheckpointState]] = {}
        self._skips: dict[str, list[SkipRecord]] = {}

    def begin(self, identity: RunIdentity) -> BeginResult:
        with self._lock:
            attempts = self._by_identity.get(identity.key, [])
            latest = self._executions[attempts[-1]] if attempts else None
            if latest is not None and (latest.status.is_active or latest.status == ExecutionStatus.COMPLETED):
                return BeginResult(record=latest, created=False)

            record = ExecutionRecord(
                execution_id=generate_id(),
                identity_key=identity.key,
                name=identity.name,
                params_json=canonical_json(dict(identity.params)),
                attempt=latest.attempt + 1 if latest is not None else 1,
                status=ExecutionStatus.STARTING,
                started_at=now(),
                resumed_from=latest.execution_id if latest is not None else None,
                plan=latest.plan if latest is not None else None,
            )
            self._executions[record.execution_id] = record
            self._by_identity.setdefault(identity.key, []).append(record.execution_id)
            inherited = self._checkpoints.get(latest.execution_id, {}) if latest is not None else {}
            self._checkpoints[record.execution_id] = dict(inherited)
            self._skips[record.execution_id] = []
            return BeginResult(record=record, created=True)

    def transition(self, execution_id: str, expected: ExecutionStatus, new: ExecutionStatus) -> bool:
        if new not in ALLOWED_TRANSITIONS[expected]:
            raise InvalidTransitionError(execution_id, expected, new)
        with self._lock:
            current = self.get(execution_id)
            if current.status != expected:
                return False
            ended_at = now() if new.is_terminal else current.ended_at
            self._executions[execution_id] = replace(current, status=new, ended_at=ended_at)
            return True

    def finish(
        self,
        execution_id: str,
        status: ExecutionStatus,
        *,
        failure_category: str | None = None,
        failure_message: str | None = None,
    ) -> ExecutionRecord:
        if not status.is_terminal:
            raise LedgerIntegrityError(f"finish() requires a terminal status, got {status.value!r}")
        with self._lock:
            current = self.get(execution_id)
            if status not in ALLOWED_TRANSITIONS[current.status]:
                raise InvalidTransitionError(execution_id, current.status, status)
            finished = replace(
                current,
                status=status,
                ended_at=now(),
                failure_category=failure_category,
                failure_message=failure_message,
            )
            self._executions[execution_id] = finished
            return finished

    def save_plan(self, execution_id: str, plan: PartitionPlan) -> None:
        with self._lock:
            self._executions[execution_id] = replace(self.get(execution_id), plan=plan)

    def checkpoint(
        self,
        execution_id: str,
        partition_index: int,
        state: CheckpointState,
        skips: Sequence[PendingSkip] = (),
    ) -> list[SkipRecord]:
        with self._lock:
            current = self.get(execution_id)
            if current.is_terminal:
                raise LedgerIntegrityError(
                    f"Cannot checkpoint execution {execution_id}: status is terminal ({current.status.value})"
                )
            self._checkpoints[execution_id][partition_index] = state
            return self._append_skips(execution_id, partition_index, skips)

    def checkpoints(self, execution_id: str) -> dict[int, CheckpointState]:
        with self._lock:
            return dict(sorted(self._checkpoints.get(execution_id, {}).items()))

    def record_skip(
        self,
        execution_id: str,
        *,
        partition_index: int,
        cursor: int,
        payload_json: str,
        error_category: str,
        error_type: str,
        error_message: str,
    ) -> SkipRecord:
        skip = PendingSkip(
            cursor=cursor,
            payload_json=payload_json,
            error_category=error_category,
            error_type=error_type,
            error_message=error_message,
        )
        with self._lock:
            self.get(execution_id)
            (record,) = self._append_skips(execution_id, partition_index, [skip])
            return record

    def _append_skips(self, execution_id: str, partition_index: int, skips: Sequence[PendingSkip]) -> list[SkipRecord]:
        records = self._skips[execution_id]
        recorded_at = now()
        appended = [
            SkipRecord(
                execution_id=execution_id,
                sequence=len(records) + offset,
                partition_index=partition_index,
                cursor=skip.cursor,
                payload_json=skip.payload_json,
                error_category=skip.error_category,
                error_type=skip.error_type,
                error_message=skip.error_message,
                recorded_at=recorded_at,
            )
            for offset, skip in enumerate(skips, start=1)
        ]
        records.extend(appended)
        return appended

    def skip_records(self, execution_id: str) -> list[SkipRecord]:
        with self._lock:
            return list(self._skips.get(execution_id, []))

    def skip_record_count(self, execution_id: str) -> int:
        with self._lock:
            return len(self._skips.get(execution_id, []))

    def find(self, identity: RunIdentity) -> ExecutionRecord | None:
        with self._lock:
            attempts = self._by_identity.get(identity.key)
            return self._executions[attempts[-1]] if attempts else None

    def get(self, execution_id: str) -> ExecutionRecord:
        with self._lock:
            if execution_id not in self._executions:
                raise ExecutionNotFoundError(execution_id)
            return self._executions[execution_id]

    def list_executions(self, *, name: str | None = None, limit: int = 50) -> list[ExecutionRecord]:
        with self._lock:
            records = [r for r in self._executions.values() if name is None or r.name == name]
        records.sort(key=lambda r: (r.started_at, r.attempt), reverse=True)
        return records[:limit]
