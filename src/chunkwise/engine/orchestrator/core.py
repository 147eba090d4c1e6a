"""RunOrchestrator: execution lifecycle for work units and jobs.

State machine (persisted in the ledger):

    STARTING -> STARTED -> COMPLETED | FAILED
    STARTED  -> STOPPING -> STOPPED (or COMPLETED if every partition finished)

A stop that only reached the run through its stop event (a signal, or a
stop() racing the start of the run) is written to the ledger as STOPPING
by the first partition that halts on it.

start() resolves the RunIdentity and asks the ledger to begin an
execution. An execution that is already in flight or COMPLETED is never
run twice: its id is returned instead. A new (or resumed) execution runs
on a background thread; each partition runs a ChunkLoop on a WorkerPool
built for that run.
"""

from __future__ import annotations

import signal
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from typing import TYPE_CHECKING, Any

import structlog

from chunkwise.contracts import (
    CheckpointState,
    ErrorCategory,
    ExecutionBegan,
    ExecutionFinished,
    ExecutionRecord,
    ExecutionStatus,
    ExecutionSummary,
    FailureReason,
    JobDefinition,
    JobResult,
    LedgerIntegrityError,
    PartitionOutcome,
    PartitionRange,
    PartitionStatus,
    PartitionSummary,
    StepResult,
    StopRequested,
    WorkUnitDefinition,
    failure_reason,
)
from chunkwise.core.canonical import make_identity
from chunkwise.core.events import EventBusProtocol, NullEventBus
from chunkwise.engine.chunk_loop import ChunkLoop
from chunkwise.engine.fault_policy import FaultPolicy, RetryHook, SkipCounter
from chunkwise.engine.orchestrator.types import RunHandle, first_failure, step_status
from chunkwise.engine.partitioner import Partitioner
from chunkwise.engine.worker_pool import WorkerPool

if TYPE_CHECKING:
    from chunkwise.core.config import ChunkwiseSettings
    from chunkwise.core.ledger.protocol import ExecutionLedgerProtocol

slog = structlog.get_logger(__name__)


class RunOrchestrator:
    """Starts, stops and reports on executions.

    Example:
        orchestrator = RunOrchestrator(SQLExecutionLedger(LedgerDB.from_url(url)))
        execution_id = orchestrator.start(work_unit, {"day": "2024-01-01"})
        result = orchestrator.wait(execution_id)
    """

    def __init__(
        self,
        ledger: ExecutionLedgerProtocol,
        *,
        event_bus: EventBusProtocol | None = None,
        max_workers: int = 4,
        queue_capacity: int = 0,
        retry_hook: RetryHook | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            ledger: Execution ledger (SQL or in-memory)
            event_bus: Receives lifecycle events; handlers may run on worker threads
            max_workers: Partitions run concurrently per execution
            queue_capacity: Partitions that may wait for a worker
            retry_hook: Optional (record, attempt, error) -> bool called before
                each record retry; returning False gives up
            sleep: Backoff sleep function (tests pass a no-op)
        """
        self._ledger = ledger
        self._events: EventBusProtocol = event_bus if event_bus is not None else NullEventBus()
        self._max_workers = max_workers
        self._queue_capacity = queue_capacity
        self._retry_hook = retry_hook
        self._sleep = sleep
        self._partitioner = Partitioner()
        self._handles: dict[str, RunHandle] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_settings(
        cls,
        settings: ChunkwiseSettings,
        *,
        event_bus: EventBusProtocol | None = None,
    ) -> RunOrchestrator:
        """Build an orchestrator and its ledger from validated settings."""
        from chunkwise.core.ledger import InMemoryExecutionLedger, LedgerDB, SQLExecutionLedger

        ledger: ExecutionLedgerProtocol
        if settings.ledger.backend == "memory":
            ledger = InMemoryExecutionLedger()
        else:
            ledger = SQLExecutionLedger(LedgerDB.from_url(settings.ledger.url))
        return cls(
            ledger,
            event_bus=event_bus,
            max_workers=settings.concurrency.max_workers,
            queue_capacity=settings.concurrency.queue_capacity,
        )

    @property
    def ledger(self) -> ExecutionLedgerProtocol:
        return self._ledger

    # ------------------------------------------------------------------
    # Execution control
    # ------------------------------------------------------------------

    def start(self, work_unit: WorkUnitDefinition, params: dict[str, Any] | None = None) -> str:
        """Begin (or resume) an execution on a background thread.

        Returns:
            execution_id. For an identity that is already in flight or
            COMPLETED, the existing execution's id; nothing new runs.
        """
        record, handle = self._begin(work_unit, params)
        if handle is None:
            return record.execution_id

        thread = threading.Thread(
            target=self._execute,
            args=(handle,),
            name=f"chunkwise-{work_unit.name}",
            daemon=True,
        )
        handle.thread = thread
        thread.start()
        return handle.execution_id

    def run(self, work_unit: WorkUnitDefinition, params: dict[str, Any] | None = None) -> StepResult:
        """Begin (or resume) an execution and run it on the calling thread."""
        record, handle = self._begin(work_unit, params)
        if handle is None:
            result = self.wait(record.execution_id)
            assert result is not None  # wait() without timeout never returns None
            return replace(result, reused=True)
        self._execute(handle)
        assert handle.result is not None
        return handle.result

    def wait(self, execution_id: str, timeout: float | None = None) -> StepResult | None:
        """Block until an execution started here finishes.

        For executions not running in this orchestrator (reused or from
        another process) the current ledger state is returned immediately.

        Returns:
            StepResult, or None if timeout elapsed first

        Raises:
            ExecutionNotFoundError: If the id is unknown to the ledger
        """
        with self._lock:
            handle = self._handles.get(execution_id)
        if handle is None:
            return self._result_from_ledger(self._ledger.get(execution_id))
        if not handle.done.wait(timeout):
            return None
        return handle.result

    def stop(self, execution_id: str) -> bool:
        """Request a graceful stop.

        Partitions finish the chunk in progress, keep their checkpoints and
        halt. A stop on a STARTING execution takes effect once it reaches
        STARTED.

        Returns:
            True if the stop was accepted (or was already in progress),
            False if the execution is already terminal.
        """
        with self._lock:
            handle = self._handles.get(execution_id)

        record = self._ledger.get(execution_id)
        if record.status.is_terminal:
            return False
        if record.status == ExecutionStatus.STOPPING:
            return True

        if handle is not None:
            handle.stop_event.set()
        if record.status == ExecutionStatus.STARTED:
            if not self._ledger.transition(execution_id, ExecutionStatus.STARTED, ExecutionStatus.STOPPING):
                # Raced with the run finishing (or another stop)
                return self._ledger.get(execution_id).status == ExecutionStatus.STOPPING
        elif handle is None:
            # STARTING in another process: nothing here can signal it
            slog.warning("stop_not_deliverable", execution_id=execution_id, status=record.status.value)
            return False

        slog.info("stop_requested", execution_id=execution_id)
        self._events.emit(StopRequested(execution_id=execution_id))
        return True

    def status(self, execution_id: str) -> ExecutionSummary:
        """Current state, counts and per-partition progress of an execution."""
        record = self._ledger.get(execution_id)
        return build_summary(
            record,
            self._ledger.checkpoints(execution_id),
            self._ledger.skip_record_count(execution_id),
        )

    def run_job(self, job: JobDefinition, params: dict[str, Any] | None = None) -> JobResult:
        """Run a job's steps in order on the calling thread."""
        from chunkwise.engine.orchestrator.job import run_job

        return run_job(self, job, params)

    def shutdown(self, timeout: float | None = None) -> None:
        """Stop every execution running here and wait for them to halt."""
        with self._lock:
            handles = [h for h in self._handles.values() if not h.done.is_set()]
        for handle in handles:
            self.stop(handle.execution_id)
        for handle in handles:
            handle.done.wait(timeout)

    @contextmanager
    def shutdown_on_signals(self) -> Iterator[threading.Event]:
        """Install SIGINT/SIGTERM handlers that stop all running executions.

        On first signal: requests a graceful stop, restores the default
        SIGINT handler (so a second Ctrl-C force-kills via KeyboardInterrupt).

        From a non-main thread, signal registration is skipped (Python
        raises ValueError outside the main thread). The returned Event is
        set when a signal arrived.
        """
        shutdown_event = threading.Event()

        if threading.current_thread() is not threading.main_thread():
            yield shutdown_event
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, frame: Any) -> None:
            signal.signal(signal.SIGINT, signal.default_int_handler)
            with self._lock:
                handles = [h for h in self._handles.values() if not h.done.is_set()]
            for handle in handles:
                # Signal handlers must not block on the ledger lock; the
                # first partition to halt records STOPPING
                handle.stop_event.set()
            shutdown_event.set()

        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
        try:
            yield shutdown_event
        finally:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _begin(
        self, work_unit: WorkUnitDefinition, params: dict[str, Any] | None
    ) -> tuple[ExecutionRecord, RunHandle | None]:
        """Resolve the execution for an identity; the handle is None when it is reused."""
        identity = make_identity(work_unit.name, params)
        begun = self._ledger.begin(identity)
        record = begun.record
        if not begun.created:
            slog.info(
                "execution_reused",
                execution_id=record.execution_id,
                name=record.name,
                status=record.status.value,
            )
            return record, None

        handle = RunHandle(record=record, work_unit=work_unit)
        with self._lock:
            self._handles[record.execution_id] = handle

        slog.info(
            "execution_began",
            execution_id=record.execution_id,
            name=record.name,
            attempt=record.attempt,
            resumed_from=record.resumed_from,
        )
        self._events.emit(
            ExecutionBegan(
                execution_id=record.execution_id,
                name=record.name,
                attempt=record.attempt,
                resumed_from=record.resumed_from,
                partition_count=len(record.plan) if record.plan is not None else work_unit.partition_count,
            )
        )
        return record, handle

    def _execute(self, handle: RunHandle) -> None:
        started = time.perf_counter()
        try:
            try:
                handle.result = self._run_step(handle)
            except Exception as exc:
                slog.exception(
                    "execution_internal_error",
                    execution_id=handle.execution_id,
                    error_type=type(exc).__name__,
                )
                handle.result = self._internal_failure(handle, exc)
                self._record_internal_failure(handle.result)
            self._report_finished(handle.result, time.perf_counter() - started)
        finally:
            handle.done.set()

    def _report_finished(self, result: StepResult, duration: float) -> None:
        failure_category = result.failure["category"] if result.failure else None
        slog.info(
            "execution_finished",
            execution_id=result.execution_id,
            name=result.name,
            status=result.status.value,
            read_count=result.read_count,
            write_count=result.write_count,
            skip_count=result.skip_count,
            filter_count=result.filter_count,
            failure_category=failure_category,
            duration_seconds=round(duration, 3),
        )
        self._events.emit(
            ExecutionFinished(
                execution_id=result.execution_id,
                name=result.name,
                status=result.status,
                failure_category=failure_category,
                duration_seconds=duration,
            )
        )

    def _run_step(self, handle: RunHandle) -> StepResult:
        record = handle.record
        work_unit = handle.work_unit
        execution_id = record.execution_id

        plan = record.plan
        if plan is None:
            plan = self._partitioner.plan(work_unit)
            self._ledger.save_plan(execution_id, plan)
        elif len(plan) != work_unit.partition_count:
            # Resumed checkpoints are only meaningful against the plan they were written for
            slog.warning(
                "persisted_plan_reused",
                execution_id=execution_id,
                persisted_partitions=len(plan),
                configured_partitions=work_unit.partition_count,
            )

        checkpoints = self._ledger.checkpoints(execution_id)

        if not self._ledger.transition(execution_id, ExecutionStatus.STARTING, ExecutionStatus.STARTED):
            current = self._ledger.get(execution_id)
            raise LedgerIntegrityError(
                f"Execution {execution_id} left STARTING outside this run (now {current.status.value!r})"
            )
        if handle.stop_event.is_set():
            # stop() arrived while STARTING
            self._ledger.transition(execution_id, ExecutionStatus.STARTED, ExecutionStatus.STOPPING)

        policy = FaultPolicy(
            work_unit.fault_policy,
            skip_counter=SkipCounter(
                work_unit.fault_policy.skip_limit,
                initial=sum(cp.skip_count for cp in checkpoints.values()),
            ),
            retry_hook=self._retry_hook,
            sleep=self._sleep,
        )
        abort_event = threading.Event()

        def run_partition(partition: PartitionRange) -> PartitionOutcome:
            return self._run_partition(handle, partition, policy, abort_event, checkpoints.get(partition.index))

        pending = sum(1 for p in plan.partitions if not (p.index in checkpoints and checkpoints[p.index].completed))
        with WorkerPool(max(1, min(self._max_workers, pending)), self._queue_capacity) as pool:
            outcomes = self._partitioner.execute(plan, pool, run_partition, completed=checkpoints)

        status = step_status(outcomes)
        if status == ExecutionStatus.STOPPED:
            self._acknowledge_stop(execution_id)
        failure = first_failure(outcomes)
        self._ledger.finish(
            execution_id,
            status,
            failure_category=failure["category"] if failure else None,
            failure_message=failure["message"] if failure else None,
        )
        return StepResult(
            execution_id=execution_id,
            name=record.name,
            status=status,
            outcomes=outcomes,
            resumed=record.resumed_from is not None,
            failure=failure,
        )

    def _run_partition(
        self,
        handle: RunHandle,
        partition: PartitionRange,
        policy: FaultPolicy,
        abort_event: threading.Event,
        resume_from: CheckpointState | None,
    ) -> PartitionOutcome:
        work_unit = handle.work_unit
        start_state = resume_from if resume_from is not None else CheckpointState.initial(partition.start)
        try:
            reader = work_unit.source.open(partition)
        except Exception as exc:
            abort_event.set()
            slog.error(
                "partition_open_failed",
                execution_id=handle.execution_id,
                partition=partition.index,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return PartitionOutcome.failed(partition.index, start_state, exc, category=ErrorCategory.SOURCE.value)

        loop = ChunkLoop(
            execution_id=handle.execution_id,
            partition=partition,
            ledger=self._ledger,
            policy=policy,
            stop_event=handle.stop_event,
            abort_event=abort_event,
            event_bus=self._events,
        )
        try:
            outcome = loop.run(reader, work_unit.transform, work_unit.sink, work_unit.chunk_size, resume_from=resume_from)
        except Exception as exc:
            abort_event.set()
            slog.exception("partition_internal_error", execution_id=handle.execution_id, partition=partition.index)
            return PartitionOutcome.failed(partition.index, start_state, exc, category=ErrorCategory.INTERNAL.value)
        finally:
            try:
                reader.close()
            except Exception as exc:
                slog.warning(
                    "source_reader_close_failed",
                    execution_id=handle.execution_id,
                    partition=partition.index,
                    error=str(exc),
                )

        if outcome.status is PartitionStatus.STOPPED and handle.stop_event.is_set():
            self._acknowledge_stop(handle.execution_id)
        return outcome

    def _acknowledge_stop(self, execution_id: str) -> None:
        """Move STARTED to STOPPING for a stop that arrived only as a stop event."""
        if self._ledger.transition(execution_id, ExecutionStatus.STARTED, ExecutionStatus.STOPPING):
            slog.info("stop_acknowledged", execution_id=execution_id)
            self._events.emit(StopRequested(execution_id=execution_id))

    @staticmethod
    def _internal_failure(handle: RunHandle, error: Exception) -> StepResult:
        return StepResult(
            execution_id=handle.execution_id,
            name=handle.record.name,
            status=ExecutionStatus.FAILED,
            resumed=handle.record.resumed_from is not None,
            failure=failure_reason(error, category=ErrorCategory.INTERNAL.value),
        )

    def _record_internal_failure(self, result: StepResult) -> None:
        """Mark the execution FAILED/internal so it never stays in flight."""
        assert result.failure is not None
        current = self._ledger.get(result.execution_id)
        if not current.is_terminal:
            self._ledger.finish(
                result.execution_id,
                ExecutionStatus.FAILED,
                failure_category=result.failure["category"],
                failure_message=result.failure["message"],
            )

    def _result_from_ledger(self, record: ExecutionRecord) -> StepResult:
        checkpoints = self._ledger.checkpoints(record.execution_id)
        outcomes: list[PartitionOutcome] = []
        if record.is_terminal:
            fallback = PartitionStatus.STOPPED if record.status == ExecutionStatus.STOPPED else PartitionStatus.FAILED
            for index, checkpoint in checkpoints.items():
                status = PartitionStatus.COMPLETED if checkpoint.completed else fallback
                outcomes.append(PartitionOutcome(index, status, checkpoint))
        failure = None
        if record.failure_category is not None:
            failure = FailureReason(
                category=record.failure_category,
                error_type="",
                message=record.failure_message or "",
            )
        return StepResult(
            execution_id=record.execution_id,
            name=record.name,
            status=record.status,
            outcomes=outcomes,
            resumed=record.resumed_from is not None,
            reused=True,
            failure=failure,
        )


def build_summary(
    record: ExecutionRecord,
    checkpoints: dict[int, CheckpointState],
    skip_record_count: int,
) -> ExecutionSummary:
    """Assemble the status view from ledger state."""
    partitions: tuple[PartitionSummary, ...] = ()
    if record.plan is not None:
        partitions = tuple(
            PartitionSummary(index=p.index, start=p.start, end=p.end, checkpoint=checkpoints.get(p.index))
            for p in record.plan.partitions
        )
    states = list(checkpoints.values())
    return ExecutionSummary(
        execution_id=record.execution_id,
        name=record.name,
        status=record.status,
        attempt=record.attempt,
        read_count=sum(s.read_count for s in states),
        write_count=sum(s.write_count for s in states),
        skip_count=sum(s.skip_count for s in states),
        filter_count=sum(s.filter_count for s in states),
        skip_record_count=skip_record_count,
        failure_category=record.failure_category,
        failure_message=record.failure_message,
        started_at=record.started_at,
        ended_at=record.ended_at,
        partitions=partitions,
    )
