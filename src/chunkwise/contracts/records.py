"""Ledger contracts.

These are strict contracts - all enum fields use proper enum types.
The repository layer handles string->enum conversion for DB reads.

The ledger is OUR data. If we read garbage from it, something
catastrophic happened - crash immediately rather than coerce.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any

from chunkwise.contracts.enums import ExecutionStatus
from chunkwise.contracts.partition import PartitionPlan


def _validate_enum(value: object, enum_type: type, field_name: str) -> None:
    """Crash on non-enum values - no coercion, no defaults."""
    if value is not None and not isinstance(value, enum_type):
        raise TypeError(f"{field_name} must be {enum_type.__name__}, got {type(value).__name__}: {value!r}")


@dataclass(frozen=True)
class RunIdentity:
    """Deduplication key for a logical run.

    Two requests with the same name and the same resolved parameters are
    the same logical run. ``key`` is computed by
    chunkwise.core.canonical.identity_key and is independent of
    parameter ordering.
    """

    name: str
    params: Mapping[str, Any] = field(compare=False)
    key: str

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("RunIdentity.name must not be empty")
        if not self.key:
            raise ValueError("RunIdentity.key must not be empty")
        # Freeze the mapping so identity cannot drift after hashing
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))


@dataclass(frozen=True)
class CheckpointState:
    """Minimal state needed to resume one partition.

    cursor is the absolute offset of the next unread record. Counts are
    cumulative across resumed attempts.
    """

    cursor: int
    read_count: int = 0
    write_count: int = 0
    skip_count: int = 0
    filter_count: int = 0
    chunk_sequence: int = 0
    completed: bool = False

    def __post_init__(self) -> None:
        for name in ("cursor", "read_count", "write_count", "skip_count", "filter_count", "chunk_sequence"):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"CheckpointState.{name} must be >= 0, got {value}")

    @classmethod
    def initial(cls, cursor: int) -> CheckpointState:
        return cls(cursor=cursor)

    def advance(
        self,
        *,
        consumed: int,
        written: int,
        skipped: int,
        filtered: int,
    ) -> CheckpointState:
        """State after one more committed chunk."""
        return replace(
            self,
            cursor=self.cursor + consumed,
            read_count=self.read_count + consumed,
            write_count=self.write_count + written,
            skip_count=self.skip_count + skipped,
            filter_count=self.filter_count + filtered,
            chunk_sequence=self.chunk_sequence + 1,
        )

    def mark_completed(self) -> CheckpointState:
        return replace(self, completed=True)


@dataclass(frozen=True)
class ExecutionRecord:
    """One attempt to run a work unit.

    Strict contract - status must be an ExecutionStatus.
    """

    execution_id: str
    identity_key: str
    name: str
    params_json: str
    attempt: int
    status: ExecutionStatus
    started_at: datetime
    ended_at: datetime | None = None
    resumed_from: str | None = None
    failure_category: str | None = None
    failure_message: str | None = None
    plan: PartitionPlan | None = None

    def __post_init__(self) -> None:
        _validate_enum(self.status, ExecutionStatus, "status")
        if self.attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {self.attempt}")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass(frozen=True)
class SkipRecord:
    """One record excluded from the sink. Append-only."""

    execution_id: str
    sequence: int
    partition_index: int
    cursor: int
    payload_json: str
    error_category: str
    error_type: str
    error_message: str
    recorded_at: datetime


@dataclass(frozen=True)
class PendingSkip:
    """A skip staged by the chunk loop, persisted with its chunk's checkpoint.

    Sequence numbers and timestamps are assigned by the ledger when the
    chunk is checkpointed; a discarded chunk leaves no skip records.
    """

    cursor: int
    payload_json: str
    error_category: str
    error_type: str
    error_message: str


@dataclass(frozen=True)
class BeginResult:
    """Result of ExecutionLedger.begin().

    created is False when an in-flight or completed execution already
    exists for the identity - the caller must not run it again.
    """

    record: ExecutionRecord
    created: bool


@dataclass(frozen=True)
class PartitionSummary:
    """Per-partition progress in a status view."""

    index: int
    start: int
    end: int
    checkpoint: CheckpointState | None


@dataclass(frozen=True)
class ExecutionSummary:
    """What status() returns: state plus aggregated counts."""

    execution_id: str
    name: str
    status: ExecutionStatus
    attempt: int
    read_count: int
    write_count: int
    skip_count: int
    filter_count: int
    skip_record_count: int
    failure_category: str | None = None
    failure_message: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    partitions: tuple[PartitionSummary, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "name": self.name,
            "status": self.status.value,
            "attempt": self.attempt,
            "read_count": self.read_count,
            "write_count": self.write_count,
            "skip_count": self.skip_count,
            "filter_count": self.filter_count,
            "skip_record_count": self.skip_record_count,
            "failure_category": self.failure_category,
            "failure_message": self.failure_message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "partitions": [
                {
                    "index": p.index,
                    "start": p.start,
                    "end": p.end,
                    "cursor": p.checkpoint.cursor if p.checkpoint else None,
                    "completed": p.checkpoint.completed if p.checkpoint else False,
                }
                for p in self.partitions
            ],
        }
