"""All status codes, verdicts, and kinds used across subsystem boundaries.

Values are stored in the ledger as plain strings. The repository layer
converts them back to enums on read and crashes on anything it does not
recognise.
"""

from enum import StrEnum


class ExecutionStatus(StrEnum):
    """Status of one execution attempt.

    Stored in the ledger (executions.status).

    Transitions:
        STARTING -> STARTED -> COMPLETED | FAILED | STOPPED
        STARTED -> STOPPING -> STOPPED
        STARTING -> FAILED (run could not be planned)
    """

    STARTING = "starting"
    STARTED = "started"
    STOPPING = "stopping"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES


TERMINAL_STATUSES: frozenset[ExecutionStatus] = frozenset(
    {ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.STOPPED}
)
ACTIVE_STATUSES: frozenset[ExecutionStatus] = frozenset(
    {ExecutionStatus.STARTING, ExecutionStatus.STARTED, ExecutionStatus.STOPPING}
)

# Legal status changes. Anything not listed here is a bug in the caller.
ALLOWED_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.STARTING: frozenset({ExecutionStatus.STARTED, ExecutionStatus.FAILED, ExecutionStatus.STOPPED}),
    ExecutionStatus.STARTED: frozenset({ExecutionStatus.STOPPING, ExecutionStatus.COMPLETED, ExecutionStatus.FAILED}),
    ExecutionStatus.STOPPING: frozenset({ExecutionStatus.STOPPED, ExecutionStatus.FAILED, ExecutionStatus.COMPLETED}),
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.FAILED: frozenset(),
    ExecutionStatus.STOPPED: frozenset(),
}


class PartitionStatus(StrEnum):
    """Terminal outcome of one chunk loop (one partition)."""

    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


class FaultVerdict(StrEnum):
    """What the fault policy decided to do with a failed record.

    Values:
        RETRY: Try the same record again (bounded by retry_limit)
        SKIP: Exclude the record from the sink and record a SkipRecord
        FATAL: Abort the current chunk without committing it
    """

    RETRY = "retry"
    SKIP = "skip"
    FATAL = "fatal"


class ErrorCategory(StrEnum):
    """Built-in error categories.

    The classification table is keyed by plain strings, so users can add
    their own categories. These are the ones the engine itself produces
    or ships defaults for.
    """

    TRANSIENT = "transient"
    VALIDATION = "validation"
    FATAL = "fatal"
    UNCLASSIFIED = "unclassified"
    SKIP_LIMIT = "skip_limit"
    SINK = "sink"
    SOURCE = "source"
    LEDGER = "ledger"
    INTERNAL = "internal"


class BackoffMode(StrEnum):
    """Delay schedule between record retries."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"


class TransformResultKind(StrEnum):
    """Tag of a TransformResult."""

    OK = "ok"
    DROPPED = "dropped"
    SKIPPED = "skipped"
    FATAL = "fatal"
