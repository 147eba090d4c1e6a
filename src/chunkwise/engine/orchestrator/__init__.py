# src/chunkwise/engine/orchestrator/__init__.py
"""Orchestrator package: execution lifecycle management.

Public API:
- RunOrchestrator: start/run/stop/status of work units and jobs
- RunHandle: in-process state of a running execution
- build_summary: status view from ledger state
- run_job: sequential multi-step jobs

Module structure:
- core.py: RunOrchestrator class (main entry point)
- types.py: RunHandle and step status aggregation
- job.py: Sequential job composition
"""

from chunkwise.engine.orchestrator.core import RunOrchestrator, build_summary
from chunkwise.engine.orchestrator.job import run_job
from chunkwise.engine.orchestrator.types import RunHandle, first_failure, step_status

__all__ = [
    "RunHandle",
    "RunOrchestrator",
    "build_summary",
    "first_failure",
    "run_job",
    "step_status",
]
