"""Lifecycle events emitted on the EventBus.

Handlers registered against an orchestrator receive these at well-defined
points:

    ExecutionBegan     after the ledger row exists (begin)
    ChunkCommitted     after a chunk's checkpoint is persisted (checkpoint)
    RecordSkipped      after a SkipRecord is appended
    PartitionFinished  when a chunk loop returns
    StopRequested      when stop() moves an execution to STOPPING
    ExecutionFinished  after the terminal status is persisted (end)

Chunk-level events are emitted from worker threads when a step is
partitioned.
"""

from dataclasses import dataclass

from chunkwise.contracts.enums import ExecutionStatus, PartitionStatus
from chunkwise.contracts.records import CheckpointState


@dataclass(frozen=True)
class ExecutionBegan:
    execution_id: str
    name: str
    attempt: int
    resumed_from: str | None
    partition_count: int


@dataclass(frozen=True)
class ChunkCommitted:
    execution_id: str
    partition_index: int
    chunk_sequence: int
    records_written: int
    checkpoint: CheckpointState


@dataclass(frozen=True)
class RecordSkipped:
    execution_id: str
    partition_index: int
    sequence: int
    cursor: int
    error_category: str


@dataclass(frozen=True)
class PartitionFinished:
    execution_id: str
    partition_index: int
    status: PartitionStatus
    checkpoint: CheckpointState


@dataclass(frozen=True)
class StopRequested:
    execution_id: str


@dataclass(frozen=True)
class ExecutionFinished:
    execution_id: str
    name: str
    status: ExecutionStatus
    failure_category: str | None
    duration_seconds: float
