"""Orchestrator run-handle types and step status rules.

IMPORTANT: Import Cycle Prevention
----------------------------------
This module is a LEAF MODULE - it must NOT import from other orchestrator
submodules (core.py, job.py). Keep it to pure data definitions.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from chunkwise.contracts import (
    ExecutionRecord,
    ExecutionStatus,
    FailureReason,
    PartitionOutcome,
    PartitionStatus,
    StepResult,
    WorkUnitDefinition,
)


@dataclass
class RunHandle:
    """In-process state of one running execution.

    Attributes:
        record: Ledger row returned by begin()
        work_unit: The step being run
        stop_event: Set by stop(); loops halt at their next chunk boundary
        done: Set once ``result`` is final
    """

    record: ExecutionRecord
    work_unit: WorkUnitDefinition
    stop_event: threading.Event = field(default_factory=threading.Event)
    done: threading.Event = field(default_factory=threading.Event)
    thread: threading.Thread | None = None
    result: StepResult | None = None

    @property
    def execution_id(self) -> str:
        return self.record.execution_id


def step_status(outcomes: list[PartitionOutcome]) -> ExecutionStatus:
    """Aggregate partition outcomes into the step's terminal status.

    Any FAILED partition fails the step; otherwise any STOPPED partition
    stops it; otherwise it COMPLETED.
    """
    statuses = {outcome.status for outcome in outcomes}
    if PartitionStatus.FAILED in statuses:
        return ExecutionStatus.FAILED
    if PartitionStatus.STOPPED in statuses:
        return ExecutionStatus.STOPPED
    return ExecutionStatus.COMPLETED


def first_failure(outcomes: list[PartitionOutcome]) -> FailureReason | None:
    """Failure of the lowest-indexed FAILED partition, if any."""
    for outcome in outcomes:
        if outcome.failure is not None:
            return outcome.failure
    return None
