"""Error contracts.

Two families live here:

1. Record errors (ChunkwiseRecordError and subclasses). Collaborators raise
   these from transform/commit to tell the fault policy which category a
   failure belongs to. Any other exception is classified through the
   configured exception-name table and fails closed when unmapped.

2. Engine errors. Raised by the ledger, planner, and orchestrator when an
   invariant is violated. These are bugs or misconfiguration, never
   record-level problems, and are not routed through the fault policy.
"""

from typing import Any, TypedDict

from chunkwise.contracts.enums import ErrorCategory, ExecutionStatus


class FailureReason(TypedDict):
    """Schema for the failure payload attached to FAILED outcomes."""

    category: str
    error_type: str
    message: str


# =============================================================================
# Record errors
# =============================================================================


class ChunkwiseRecordError(Exception):
    """Base class for errors raised while processing a single record.

    Subclasses set ``category`` so the fault policy can classify them
    without consulting the exception-name table. Instances may override the
    class default by passing ``category=`` explicitly.
    """

    category: str = ErrorCategory.UNCLASSIFIED.value

    def __init__(self, message: str, *, category: str | None = None) -> None:
        super().__init__(message)
        if category is not None:
            self.category = category


class TransientRecordError(ChunkwiseRecordError):
    """Network/timeout-style failure. Retried by default."""

    category = ErrorCategory.TRANSIENT.value


class RecordValidationError(ChunkwiseRecordError):
    """Bad or unprocessable record. Skipped by default."""

    category = ErrorCategory.VALIDATION.value


class FatalRecordError(ChunkwiseRecordError):
    """Unrecoverable failure. Always aborts the chunk by default."""

    category = ErrorCategory.FATAL.value


# =============================================================================
# Engine errors
# =============================================================================


class SkipLimitExceeded(Exception):
    """Raised when a skip would push an execution past its skip ceiling."""

    category = ErrorCategory.SKIP_LIMIT.value

    def __init__(self, skip_limit: int, cause: BaseException) -> None:
        self.skip_limit = skip_limit
        self.cause = cause
        super().__init__(f"Skip limit ({skip_limit}) exceeded: {type(cause).__name__}: {cause}")


class SinkCommitError(Exception):
    """Raised when a chunk could not be durably committed to the sink."""

    category = ErrorCategory.SINK.value

    def __init__(self, chunk_sequence: int, cause: BaseException, *, attempts: int = 1) -> None:
        self.chunk_sequence = chunk_sequence
        self.cause = cause
        self.attempts = attempts
        super().__init__(f"Commit of chunk {chunk_sequence} failed after {attempts} attempt(s): {type(cause).__name__}: {cause}")


class ConfigurationError(ValueError):
    """Raised when a work unit or settings file is invalid."""

    pass


class PartitionPlanError(ValueError):
    """Raised when a partition plan violates disjoint/gap-free/complete coverage."""

    pass


class LedgerIntegrityError(Exception):
    """Raised when a ledger operation would corrupt execution state.

    Examples: writing a checkpoint for a terminal execution, finishing an
    execution with a non-terminal status.
    """

    category = ErrorCategory.LEDGER.value


class ExecutionNotFoundError(LookupError):
    """Raised when an execution id is not present in the ledger."""

    def __init__(self, execution_id: str) -> None:
        self.execution_id = execution_id
        super().__init__(f"Execution not found: {execution_id}")


class InvalidTransitionError(LedgerIntegrityError):
    """Raised when a status change is not in ALLOWED_TRANSITIONS."""

    def __init__(self, execution_id: str, current: ExecutionStatus, requested: ExecutionStatus) -> None:
        self.execution_id = execution_id
        self.current = current
        self.requested = requested
        super().__init__(f"Execution {execution_id}: illegal transition {current.value!r} -> {requested.value!r}")


def failure_reason(error: BaseException, *, category: str | None = None) -> FailureReason:
    """Build a FailureReason payload from an exception."""
    resolved: Any = category if category is not None else getattr(error, "category", ErrorCategory.UNCLASSIFIED.value)
    return {
        "category": str(resolved),
        "error_type": type(error).__name__,
        "message": str(error),
    }
