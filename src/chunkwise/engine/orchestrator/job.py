"""Sequential job composition.

A job is an ordered list of steps. Each step is an independent execution
keyed by "<job>.<step>" and the job's params, so re-running a job after a
failure skips completed steps and resumes the first unfinished one.
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Any

import structlog

from chunkwise.contracts import ExecutionStatus, JobDefinition, JobResult, StepResult

if TYPE_CHECKING:
    from chunkwise.engine.orchestrator.core import RunOrchestrator

slog = structlog.get_logger(__name__)


def run_job(orchestrator: RunOrchestrator, job: JobDefinition, params: dict[str, Any] | None = None) -> JobResult:
    """Run each step in order, halting at the first one that did not complete.

    Returns:
        JobResult. status is COMPLETED only if every step completed,
        otherwise the status of the step that halted the job.
    """
    steps: list[StepResult] = []
    log = slog.bind(job=job.name)
    log.info("job_started", steps=len(job.steps))

    for position, step in enumerate(job.steps):
        identity_step = replace(step, name=job.step_identity_name(step))
        result = orchestrator.run(identity_step, params)
        steps.append(result)
        if result.reused and result.status == ExecutionStatus.COMPLETED:
            log.info("job_step_already_completed", step=step.name, execution_id=result.execution_id)

        if result.status != ExecutionStatus.COMPLETED:
            not_run = [remaining.name for remaining in job.steps[position + 1 :]]
            log.warning(
                "job_halted",
                step=step.name,
                execution_id=result.execution_id,
                status=result.status.value,
                not_run=not_run,
            )
            return JobResult(job_name=job.name, status=result.status, steps=steps, not_run=not_run)

    log.info("job_completed", steps=len(steps))
    return JobResult(job_name=job.name, status=ExecutionStatus.COMPLETED, steps=steps)
