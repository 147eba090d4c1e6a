"""Repository layer for ledger records.

Handles the seam between SQLAlchemy rows (strings) and domain objects
(strict enum types). This is NOT a trust boundary - if the database
has bad data, we crash.
"""

from typing import Any

from sqlalchemy.engine import Row as SARow

from chunkwise.contracts import (
    CheckpointState,
    ExecutionRecord,
    ExecutionStatus,
    PartitionPlan,
    SkipRecord,
)
from chunkwise.core.ledger._helpers import ensure_utc


class ExecutionRepository:
    """Repository for ExecutionRecord rows."""

    def load(self, row: SARow[Any]) -> ExecutionRecord:
        """Load ExecutionRecord from database row.

        Converts status to its enum and parses the stored plan. Crashes
        on invalid data.
        """
        started_at = ensure_utc(row.started_at)
        assert started_at is not None  # NOT NULL column
        return ExecutionRecord(
            execution_id=row.execution_id,
            identity_key=row.identity_key,
            name=row.name,
            params_json=row.params_json,
            attempt=row.attempt,
            status=ExecutionStatus(row.status),  # Convert HERE
            started_at=started_at,
            ended_at=ensure_utc(row.ended_at),
            resumed_from=row.resumed_from,
            failure_category=row.failure_category,
            failure_message=row.failure_message,
            plan=PartitionPlan.from_json(row.plan_json) if row.plan_json is not None else None,
        )


class CheckpointRepository:
    """Repository for CheckpointState rows."""

    def load(self, row: SARow[Any]) -> CheckpointState:
        return CheckpointState(
            cursor=row.cursor,
            read_count=row.read_count,
            write_count=row.write_count,
            skip_count=row.skip_count,
            filter_count=row.filter_count,
            chunk_sequence=row.chunk_sequence,
            completed=bool(row.completed),
        )

    def values(self, state: CheckpointState) -> dict[str, Any]:
        """Column values for an insert/update of this state."""
        return {
            "cursor": state.cursor,
            "read_count": state.read_count,
            "write_count": state.write_count,
            "skip_count": state.skip_count,
            "filter_count": state.filter_count,
            "chunk_sequence": state.chunk_sequence,
            "completed": state.completed,
        }


class SkipRecordRepository:
    """Repository for SkipRecord rows."""

    def load(self, row: SARow[Any]) -> SkipRecord:
        recorded_at = ensure_utc(row.recorded_at)
        assert recorded_at is not None  # NOT NULL column
        return SkipRecord(
            execution_id=row.execution_id,
            sequence=row.sequence,
            partition_index=row.partition_index,
            cursor=row.cursor,
            payload_json=row.payload_json,
            error_category=row.error_category,
            error_type=row.error_type,
            error_message=row.error_message,
            recorded_at=recorded_at,
        )
