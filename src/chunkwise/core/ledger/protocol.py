"""Execution ledger protocol.

The ledger is the durable record of every execution attempt: its status,
its partition plan, the latest checkpoint per partition, and the skip
records it produced. Two implementations exist:

    SQLExecutionLedger       SQLAlchemy Core over LedgerDB (SQLite/PostgreSQL)
    InMemoryExecutionLedger  dict-backed, for tests and embedding

Both are safe to call from multiple worker threads.
"""

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from chunkwise.contracts import (
    BeginResult,
    CheckpointState,
    ExecutionRecord,
    ExecutionStatus,
    PartitionPlan,
    PendingSkip,
    RunIdentity,
    SkipRecord,
)


@runtime_checkable
class ExecutionLedgerProtocol(Protocol):
    """Durable execution state store."""

    def begin(self, identity: RunIdentity) -> BeginResult:
        """Create or resume the execution for an identity (atomic per identity).

        - An in-flight (STARTING/STARTED/STOPPING) or COMPLETED latest
          attempt is returned with created=False.
        - A FAILED/STOPPED latest attempt produces a new attempt row that
          inherits the plan and checkpoints, with resumed_from set.
        - Otherwise a fresh attempt 1 is created.
        """
        ...

    def transition(self, execution_id: str, expected: ExecutionStatus, new: ExecutionStatus) -> bool:
        """Compare-and-set status change.

        Returns False when the current status is not ``expected``.

        Raises:
            InvalidTransitionError: If expected -> new is not an allowed transition
            ExecutionNotFoundError: If the execution does not exist
        """
        ...

    def save_plan(self, execution_id: str, plan: PartitionPlan) -> None: ...

    def checkpoint(
        self,
        execution_id: str,
        partition_index: int,
        state: CheckpointState,
        skips: Sequence[PendingSkip] = (),
    ) -> list[SkipRecord]:
        """Overwrite the partition's checkpoint and append the chunk's skips.

        Both writes are one atomic unit: either the checkpoint and every
        skip record land, or neither does.

        Returns:
            The appended SkipRecords, with sequence numbers assigned

        Raises:
            LedgerIntegrityError: If the execution is already terminal
        """
        ...

    def checkpoints(self, execution_id: str) -> dict[int, CheckpointState]: ...

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
        """Append a SkipRecord with the next per-execution sequence number."""
        ...

    def skip_records(self, execution_id: str) -> list[SkipRecord]: ...

    def skip_record_count(self, execution_id: str) -> int: ...

    def finish(
        self,
        execution_id: str,
        status: ExecutionStatus,
        *,
        failure_category: str | None = None,
        failure_message: str | None = None,
    ) -> ExecutionRecord:
        """Move an execution to a terminal status and stamp ended_at.

        Raises:
            LedgerIntegrityError: If status is not terminal
            InvalidTransitionError: If the current status cannot move to status
        """
        ...

    def find(self, identity: RunIdentity) -> ExecutionRecord | None:
        """Latest attempt for an identity, or None."""
        ...

    def get(self, execution_id: str) -> ExecutionRecord:
        """Raises ExecutionNotFoundError for unknown ids."""
        ...

    def list_executions(self, *, name: str | None = None, limit: int = 50) -> list[ExecutionRecord]:
        """Most recently started first."""
        ...

