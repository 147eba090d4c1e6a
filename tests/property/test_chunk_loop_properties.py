# tests/property/test_chunk_loop_properties.py
"""Property-based tests for chunk boundaries and resume.

Properties tested:
1. Batches are chunk_size records except a shorter final one
2. Every input record reaches the sink exactly once
3. Resuming from any committed checkpoint gives the same final sink content
"""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from chunkwise.contracts import CheckpointState, ExecutionStatus, FaultPolicyConfig, PartitionRange, PartitionStatus
from chunkwise.core.canonical import make_identity
from chunkwise.core.ledger import InMemoryExecutionLedger
from chunkwise.engine.chunk_loop import ChunkLoop
from chunkwise.engine.fault_policy import FaultPolicy
from chunkwise.plugins import ListSink, ListSource, identity_transform


def _loop(ledger: InMemoryExecutionLedger, execution_id: str, size: int) -> ChunkLoop:
    return ChunkLoop(
        execution_id=execution_id,
        partition=PartitionRange(index=0, start=0, end=size),
        ledger=ledger,
        policy=FaultPolicy(FaultPolicyConfig()),
    )


def _started(ledger: InMemoryExecutionLedger) -> str:
    record = ledger.begin(make_identity("prop")).record
    ledger.transition(record.execution_id, ExecutionStatus.STARTING, ExecutionStatus.STARTED)
    return record.execution_id


class TestChunkBoundaryProperties:
    @given(size=st.integers(min_value=0, max_value=500), chunk_size=st.integers(min_value=1, max_value=64))
    @settings(max_examples=200)
    def test_batches_and_counts(self, size: int, chunk_size: int) -> None:
        ledger = InMemoryExecutionLedger()
        execution_id = _started(ledger)
        records = list(range(size))
        sink = ListSink()

        outcome = _loop(ledger, execution_id, size).run(
            ListSource(records).open(PartitionRange(index=0, start=0, end=size)),
            identity_transform(),
            sink,
            chunk_size,
        )

        full, remainder = divmod(size, chunk_size)
        assert sink.batch_sizes == [chunk_size] * full + ([remainder] if remainder else [])
        assert sink.records == records
        assert outcome.status is PartitionStatus.COMPLETED
        assert outcome.checkpoint.chunk_sequence == len(sink.batch_sizes)
        assert outcome.checkpoint.read_count == outcome.checkpoint.write_count == size

    @given(
        size=st.integers(min_value=1, max_value=300),
        chunk_size=st.integers(min_value=1, max_value=50),
        data=st.data(),
    )
    @settings(max_examples=150)
    def test_resume_from_any_checkpoint(self, size: int, chunk_size: int, data: st.DataObject) -> None:
        ledger = InMemoryExecutionLedger()
        execution_id = _started(ledger)
        chunks_total = -(-size // chunk_size)
        committed_chunks = data.draw(st.integers(min_value=0, max_value=chunks_total))
        cursor = min(committed_chunks * chunk_size, size)
        records = list(range(size))
        sink = ListSink()
        sink.commit(records[:cursor], None)  # type: ignore[arg-type]
        checkpoint = CheckpointState(
            cursor=cursor,
            read_count=cursor,
            write_count=cursor,
            chunk_sequence=committed_chunks,
        )

        outcome = _loop(ledger, execution_id, size).run(
            ListSource(records).open(PartitionRange(index=0, start=0, end=size)),
            identity_transform(),
            sink,
            chunk_size,
            resume_from=checkpoint,
        )

        assert sink.records == records
        assert outcome.checkpoint.write_count == size
        assert outcome.checkpoint.chunk_sequence == chunks_total
