# src/chunkwise/engine/__init__.py
"""Chunkwise engine: chunk-oriented batch execution.

This module provides the execution engine:
- RunOrchestrator: Execution lifecycle (start, stop, resume, jobs)
- ChunkLoop: Read, transform, commit and checkpoint one partition
- FaultPolicy: Retry/skip/fatal decisions per record error
- Partitioner / WorkerPool: Parallel partitions on a bounded pool
- RetryManager: Retry logic with tenacity

Example:
    from chunkwise.core.ledger import LedgerDB, SQLExecutionLedger
    from chunkwise.engine import RunOrchestrator

    ledger = SQLExecutionLedger(LedgerDB.from_url("sqlite:///ledger.db"))

    work_unit = WorkUnitDefinition(
        name="daily-load",
        chunk_size=100,
        source=source,
        transform=transform,
        sink=sink,
    )

    orchestrator = RunOrchestrator(ledger)
    result = orchestrator.run(work_unit, {"day": "2024-01-01"})
"""

from chunkwise.engine.chunk_loop import ChunkLoop
from chunkwise.engine.executors import SinkExecutor, TransformExecutor
from chunkwise.engine.fault_policy import FaultPolicy, SkipCounter
from chunkwise.engine.orchestrator import RunHandle, RunOrchestrator, build_summary, run_job
from chunkwise.engine.partitioner import Partitioner, split_domain
from chunkwise.engine.retry import MaxRetriesExceeded, RetryConfig, RetryManager
from chunkwise.engine.worker_pool import WorkerPool

__all__ = [
    "ChunkLoop",
    "FaultPolicy",
    "MaxRetriesExceeded",
    "Partitioner",
    "RetryConfig",
    "RetryManager",
    "RunHandle",
    "RunOrchestrator",
    "SinkExecutor",
    "SkipCounter",
    "TransformExecutor",
    "WorkerPool",
    "build_summary",
    "run_job",
    "split_domain",
]
