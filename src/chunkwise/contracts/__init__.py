"""Shared contracts for cross-boundary data types.

All dataclasses, enums and exceptions that cross subsystem boundaries are
defined here. This package is a LEAF: it never imports from core, engine
or plugins at runtime (type-only imports are allowed).

Import patterns:
    # Contracts (lightweight, no heavy dependencies)
    from chunkwise.contracts import ExecutionStatus, CheckpointState

    # Settings classes (from core, pulls in pydantic/dynaconf)
    from chunkwise.core.config import ChunkwiseSettings
"""

from chunkwise.contracts.enums import (
    ACTIVE_STATUSES,
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    BackoffMode,
    ErrorCategory,
    ExecutionStatus,
    FaultVerdict,
    PartitionStatus,
    TransformResultKind,
)
from chunkwise.contracts.errors import (
    ChunkwiseRecordError,
    ConfigurationError,
    ExecutionNotFoundError,
    FailureReason,
    FatalRecordError,
    InvalidTransitionError,
    LedgerIntegrityError,
    PartitionPlanError,
    RecordValidationError,
    SinkCommitError,
    SkipLimitExceeded,
    TransientRecordError,
    failure_reason,
)
from chunkwise.contracts.events import (
    ChunkCommitted,
    ExecutionBegan,
    ExecutionFinished,
    PartitionFinished,
    RecordSkipped,
    StopRequested,
)
from chunkwise.contracts.partition import PartitionPlan, PartitionRange
from chunkwise.contracts.records import (
    BeginResult,
    CheckpointState,
    ExecutionRecord,
    ExecutionSummary,
    PartitionSummary,
    PendingSkip,
    RunIdentity,
    SkipRecord,
)
from chunkwise.contracts.results import (
    CommitContext,
    JobResult,
    PartitionOutcome,
    StepResult,
    TransformResult,
)
from chunkwise.contracts.work_unit import (
    DEFAULT_CLASSIFICATION,
    DEFAULT_EXCEPTION_CATEGORIES,
    FaultPolicyConfig,
    JobDefinition,
    WorkUnitDefinition,
)

__all__ = [
    "ACTIVE_STATUSES",
    "ALLOWED_TRANSITIONS",
    "DEFAULT_CLASSIFICATION",
    "DEFAULT_EXCEPTION_CATEGORIES",
    "TERMINAL_STATUSES",
    "BackoffMode",
    "BeginResult",
    "CheckpointState",
    "ChunkCommitted",
    "ChunkwiseRecordError",
    "CommitContext",
    "ConfigurationError",
    "ErrorCategory",
    "ExecutionBegan",
    "ExecutionFinished",
    "ExecutionNotFoundError",
    "ExecutionRecord",
    "ExecutionStatus",
    "ExecutionSummary",
    "FailureReason",
    "FatalRecordError",
    "FaultPolicyConfig",
    "FaultVerdict",
    "InvalidTransitionError",
    "JobDefinition",
    "JobResult",
    "LedgerIntegrityError",
    "PartitionFinished",
    "PartitionOutcome",
    "PartitionPlan",
    "PartitionPlanError",
    "PartitionRange",
    "PartitionStatus",
    "PartitionSummary",
    "PendingSkip",
    "RecordSkipped",
    "RecordValidationError",
    "RunIdentity",
    "SinkCommitError",
    "SkipLimitExceeded",
    "SkipRecord",
    "StepResult",
    "StopRequested",
    "TransformResult",
    "TransformResultKind",
    "TransientRecordError",
    "WorkUnitDefinition",
    "failure_reason",
]
