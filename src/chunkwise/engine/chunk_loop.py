# src/chunkwise/engine/chunk_loop.py
"""ChunkLoop: read, transform, commit and checkpoint one partition.

Each iteration is one chunk:

    1. halt (STOPPED) if a stop or abort was signalled
    2. pull up to chunk_size records, never past the partition end
    3. transform each record; skips are staged with the chunk
    4. commit the surviving records as one batch
    5. checkpoint the advanced cursor, together with the staged skip
       records, BEFORE pulling again

A crash between 4 and 5 means the chunk is committed but not
checkpointed; resume replays exactly that chunk (at-least-once for the
last chunk, exactly-once for everything before it). A chunk that is never
checkpointed leaves no skip records behind, so a replayed skip is
recorded once.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

import structlog

from chunkwise.contracts import (
    CheckpointState,
    ChunkCommitted,
    CommitContext,
    ErrorCategory,
    FaultVerdict,
    PartitionFinished,
    PartitionOutcome,
    PartitionRange,
    PartitionStatus,
    PendingSkip,
    RecordSkipped,
    SkipRecord,
    SinkCommitError,
    SkipLimitExceeded,
    TransformResultKind,
)
from chunkwise.core.canonical import snapshot_payload
from chunkwise.core.events import EventBusProtocol, NullEventBus
from chunkwise.core.ledger.protocol import ExecutionLedgerProtocol
from chunkwise.engine.executors import SinkExecutor, TransformExecutor
from chunkwise.engine.fault_policy import FaultPolicy
from chunkwise.plugins.protocols import SinkProtocol, SourceReader, TransformProtocol

slog = structlog.get_logger(__name__)


class _ChunkAborted(Exception):
    """Internal: the current chunk hit a FATAL verdict."""

    def __init__(self, error: BaseException, category: str) -> None:
        self.error = error
        self.category = category
        super().__init__(str(error))


@dataclass
class _ChunkTally:
    batch: list[Any]
    skips: list[PendingSkip] = field(default_factory=list)
    consumed: int = 0
    filtered: int = 0


class ChunkLoop:
    """Runs one partition of one execution to a terminal outcome.

    One instance per partition; never shared between threads. The stop
    and abort events are shared by every partition of the execution:
    ``stop`` is set by the operator, ``abort`` by the first partition that
    fails, and both halt the loop at the next chunk boundary.

    Example:
        loop = ChunkLoop(
            execution_id=record.execution_id,
            partition=plan[0],
            ledger=ledger,
            policy=FaultPolicy(work_unit.fault_policy),
        )
        outcome = loop.run(reader, work_unit.transform, work_unit.sink, chunk_size=100, resume_from=None)
    """

    def __init__(
        self,
        *,
        execution_id: str,
        partition: PartitionRange,
        ledger: ExecutionLedgerProtocol,
        policy: FaultPolicy,
        stop_event: threading.Event | None = None,
        abort_event: threading.Event | None = None,
        event_bus: EventBusProtocol | None = None,
    ) -> None:
        self._execution_id = execution_id
        self._partition = partition
        self._ledger = ledger
        self._policy = policy
        self._stop_event = stop_event if stop_event is not None else threading.Event()
        self._abort_event = abort_event if abort_event is not None else threading.Event()
        self._events: EventBusProtocol = event_bus if event_bus is not None else NullEventBus()
        self._log = slog.bind(execution_id=execution_id, partition=partition.index)

    def run(
        self,
        source: SourceReader,
        transform: TransformProtocol,
        sink: SinkProtocol,
        chunk_size: int,
        resume_from: CheckpointState | None = None,
    ) -> PartitionOutcome:
        """Process the partition until it completes, halts, or fails.

        Args:
            source: Reader opened for this partition's range
            transform: Per-record transform
            sink: Chunk-level sink
            chunk_size: Records per committed chunk
            resume_from: Last committed checkpoint, or None for a fresh start

        Returns:
            PartitionOutcome (COMPLETED, STOPPED or FAILED). Never raises
            for collaborator or ledger failures.
        """
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be > 0, got {chunk_size}")

        state = resume_from if resume_from is not None else CheckpointState.initial(self._partition.start)
        if state.completed:
            self._log.debug("partition_already_completed", cursor=state.cursor)
            return self._finish(PartitionOutcome(self._partition.index, PartitionStatus.COMPLETED, state))

        if not (self._partition.start <= state.cursor <= self._partition.end):
            error = ValueError(
                f"checkpoint cursor {state.cursor} outside partition range "
                f"[{self._partition.start}, {self._partition.end})"
            )
            return self._fail(state, error, ErrorCategory.LEDGER.value, chunks=0)

        transform_executor = TransformExecutor(transform, self._policy)
        sink_executor = SinkExecutor(sink, self._policy)
        chunks = 0

        if resume_from is not None:
            self._log.info("partition_resuming", cursor=state.cursor, chunk_sequence=state.chunk_sequence)

        try:
            source.seek(state.cursor)
        except Exception as exc:
            return self._fail(state, exc, ErrorCategory.SOURCE.value, chunks=chunks)

        while True:
            if self._halted():
                self._log.info("partition_stopped", cursor=state.cursor, chunks_committed=chunks)
                return self._finish(
                    PartitionOutcome(self._partition.index, PartitionStatus.STOPPED, state, chunks_committed=chunks)
                )

            remaining = self._partition.end - state.cursor
            try:
                records = source.pull(min(chunk_size, remaining)) if remaining > 0 else []
            except Exception as exc:
                return self._fail(state, exc, ErrorCategory.SOURCE.value, chunks=chunks)
            if len(records) > min(chunk_size, remaining):
                error = ValueError(f"source returned {len(records)} records, at most {min(chunk_size, remaining)} requested")
                return self._fail(state, error, ErrorCategory.SOURCE.value, chunks=chunks)

            if not records:
                state = state.mark_completed()
                try:
                    self._ledger.checkpoint(self._execution_id, self._partition.index, state)
                except Exception as exc:
                    return self._fail(state, exc, ErrorCategory.LEDGER.value, chunks=chunks)
                self._log.info(
                    "partition_completed",
                    cursor=state.cursor,
                    read_count=state.read_count,
                    write_count=state.write_count,
                    skip_count=state.skip_count,
                    chunks_committed=chunks,
                )
                return self._finish(
                    PartitionOutcome(self._partition.index, PartitionStatus.COMPLETED, state, chunks_committed=chunks)
                )

            try:
                tally = self._process_chunk(records, state, transform_executor)
            except _ChunkAborted as aborted:
                return self._fail(state, aborted.error, aborted.category, chunks=chunks)

            context = CommitContext(
                execution_id=self._execution_id,
                partition_index=self._partition.index,
                chunk_sequence=state.chunk_sequence + 1,
                cursor_start=state.cursor,
                cursor_end=state.cursor + tally.consumed,
            )
            if tally.batch:
                try:
                    sink_executor.commit(tally.batch, context)
                except SinkCommitError as exc:
                    return self._fail(state, exc, ErrorCategory.SINK.value, chunks=chunks)

            advanced = state.advance(
                consumed=tally.consumed,
                written=len(tally.batch),
                skipped=len(tally.skips),
                filtered=tally.filtered,
            )
            try:
                skip_records = self._ledger.checkpoint(self._execution_id, self._partition.index, advanced, tally.skips)
            except Exception as exc:
                # Committed but not checkpointed: resume replays this chunk
                return self._fail(state, exc, ErrorCategory.LEDGER.value, chunks=chunks)
            state = advanced
            chunks += 1

            self._log.debug(
                "chunk_committed",
                chunk_sequence=state.chunk_sequence,
                records_written=len(tally.batch),
                skipped=len(skip_records),
                filtered=tally.filtered,
                cursor=state.cursor,
            )
            for skip in skip_records:
                self._report_skip(skip)
            self._events.emit(
                ChunkCommitted(
                    execution_id=self._execution_id,
                    partition_index=self._partition.index,
                    chunk_sequence=state.chunk_sequence,
                    records_written=len(tally.batch),
                    checkpoint=state,
                )
            )

    def _process_chunk(
        self,
        records: list[Any],
        state: CheckpointState,
        transform_executor: TransformExecutor,
    ) -> _ChunkTally:
        tally = _ChunkTally(batch=[])
        for offset, record in enumerate(records):
            result = transform_executor.execute(record)
            tally.consumed += 1

            if result.kind is TransformResultKind.OK:
                tally.batch.append(result.record)
            elif result.kind is TransformResultKind.DROPPED:
                tally.filtered += 1
            elif result.kind is TransformResultKind.SKIPPED:
                assert result.error is not None and result.category is not None
                if self._policy.on_skip(record, result.error, result.category) is FaultVerdict.FATAL:
                    raise _ChunkAborted(
                        SkipLimitExceeded(self._policy.skip_counter.limit, result.error),
                        ErrorCategory.SKIP_LIMIT.value,
                    )
                tally.skips.append(
                    PendingSkip(
                        cursor=state.cursor + offset,
                        payload_json=snapshot_payload(record),
                        error_category=result.category,
                        error_type=type(result.error).__name__,
                        error_message=str(result.error),
                    )
                )
            else:
                assert result.error is not None and result.category is not None
                raise _ChunkAborted(result.error, result.category)
        return tally

    def _report_skip(self, skip: SkipRecord) -> None:
        self._log.info(
            "record_skipped",
            cursor=skip.cursor,
            sequence=skip.sequence,
            category=skip.error_category,
            error_type=skip.error_type,
        )
        self._events.emit(
            RecordSkipped(
                execution_id=self._execution_id,
                partition_index=self._partition.index,
                sequence=skip.sequence,
                cursor=skip.cursor,
                error_category=skip.error_category,
            )
        )

    def _halted(self) -> bool:
        return self._stop_event.is_set() or self._abort_event.is_set()

    def _fail(self, state: CheckpointState, error: BaseException, category: str, *, chunks: int) -> PartitionOutcome:
        # Siblings halt at their next chunk boundary
        self._abort_event.set()
        self._log.error(
            "partition_failed",
            cursor=state.cursor,
            category=category,
            error_type=type(error).__name__,
            error=str(error),
            chunks_committed=chunks,
        )
        return self._finish(
            PartitionOutcome.failed(self._partition.index, state, error, category=category, chunks_committed=chunks)
        )

    def _finish(self, outcome: PartitionOutcome) -> PartitionOutcome:
        self._events.emit(
            PartitionFinished(
                execution_id=self._execution_id,
                partition_index=outcome.partition_index,
                status=outcome.status,
                checkpoint=outcome.checkpoint,
            )
        )
        return outcome
