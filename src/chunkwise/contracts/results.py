"""Operation outcomes and results.

These types answer: "What did an operation produce?"

TransformResult is the tagged result returned across the transform
boundary. The chunk loop never catches collaborator exceptions itself;
the TransformExecutor turns them into one of four tags and the loop
dispatches on the tag:

    ok       -> record goes into the chunk's batch
    dropped  -> intentionally filtered (not an error, not a skip)
    skipped  -> excluded from the sink, SkipRecord appended
    fatal    -> abort the chunk without committing it
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from chunkwise.contracts.enums import ExecutionStatus, PartitionStatus, TransformResultKind
from chunkwise.contracts.errors import FailureReason, failure_reason
from chunkwise.contracts.records import CheckpointState


@dataclass(frozen=True)
class TransformResult:
    """Tagged result of transforming one record.

    Use the factory methods to create instances.
    """

    kind: TransformResultKind
    record: Any = None
    error: BaseException | None = None
    category: str | None = None
    attempts: int = 1

    def __post_init__(self) -> None:
        if self.kind in (TransformResultKind.SKIPPED, TransformResultKind.FATAL):
            if self.error is None or self.category is None:
                raise ValueError(f"TransformResult {self.kind.value!r} requires error and category")
        elif self.error is not None:
            raise ValueError(f"TransformResult {self.kind.value!r} must not carry an error")

    @classmethod
    def ok(cls, record: Any, *, attempts: int = 1) -> TransformResult:
        return cls(kind=TransformResultKind.OK, record=record, attempts=attempts)

    @classmethod
    def dropped(cls, *, attempts: int = 1) -> TransformResult:
        return cls(kind=TransformResultKind.DROPPED, attempts=attempts)

    @classmethod
    def skipped(cls, error: BaseException, category: str, *, attempts: int = 1) -> TransformResult:
        return cls(kind=TransformResultKind.SKIPPED, error=error, category=category, attempts=attempts)

    @classmethod
    def fatal(cls, error: BaseException, category: str, *, attempts: int = 1) -> TransformResult:
        return cls(kind=TransformResultKind.FATAL, error=error, category=category, attempts=attempts)

    @property
    def is_ok(self) -> bool:
        return self.kind is TransformResultKind.OK


@dataclass(frozen=True)
class CommitContext:
    """Passed to Sink.commit() with every batch.

    (execution_id, partition_index, chunk_sequence) is unique per chunk and
    stable across a resume of the same chunk, so sinks can use it as an
    idempotency key.
    """

    execution_id: str
    partition_index: int
    chunk_sequence: int
    cursor_start: int
    cursor_end: int

    @property
    def idempotency_key(self) -> str:
        return f"{self.execution_id}:{self.partition_index}:{self.chunk_sequence}"


@dataclass(frozen=True)
class PartitionOutcome:
    """Terminal outcome of one chunk loop."""

    partition_index: int
    status: PartitionStatus
    checkpoint: CheckpointState
    chunks_committed: int = 0
    failure: FailureReason | None = None

    @classmethod
    def failed(
        cls,
        partition_index: int,
        checkpoint: CheckpointState,
        error: BaseException,
        *,
        category: str | None = None,
        chunks_committed: int = 0,
    ) -> PartitionOutcome:
        return cls(
            partition_index=partition_index,
            status=PartitionStatus.FAILED,
            checkpoint=checkpoint,
            chunks_committed=chunks_committed,
            failure=failure_reason(error, category=category),
        )


@dataclass
class StepResult:
    """Result of running one work unit (one orchestrator invocation)."""

    execution_id: str
    name: str
    status: ExecutionStatus
    outcomes: list[PartitionOutcome] = field(default_factory=list)
    resumed: bool = False
    reused: bool = False  # True when start() returned an existing execution
    failure: FailureReason | None = None

    @property
    def read_count(self) -> int:
        return sum(o.checkpoint.read_count for o in self.outcomes)

    @property
    def write_count(self) -> int:
        return sum(o.checkpoint.write_count for o in self.outcomes)

    @property
    def skip_count(self) -> int:
        return sum(o.checkpoint.skip_count for o in self.outcomes)

    @property
    def filter_count(self) -> int:
        return sum(o.checkpoint.filter_count for o in self.outcomes)


@dataclass
class JobResult:
    """Result of a sequential multi-step job."""

    job_name: str
    status: ExecutionStatus
    steps: list[StepResult] = field(default_factory=list)
    not_run: list[str] = field(default_factory=list)
