"""Tests for the in-memory reference collaborators."""

from typing import Any

import pytest

from chunkwise.contracts import CommitContext, PartitionRange
from chunkwise.plugins import DROP, FunctionTransform, ListSink, ListSource, identity_transform
from chunkwise.plugins.protocols import SinkProtocol, SourceProvider, SourceReader, TransformProtocol


def _context(sequence: int = 1) -> CommitContext:
    return CommitContext(execution_id="e", partition_index=0, chunk_sequence=sequence, cursor_start=0, cursor_end=1)


class TestListSource:
    def test_satisfies_protocols(self) -> None:
        source = ListSource([1, 2, 3])

        assert isinstance(source, SourceProvider)
        assert isinstance(source.open(PartitionRange(index=0, start=0, end=3)), SourceReader)

    def test_reader_stays_within_range(self) -> None:
        reader = ListSource(range(10)).open(PartitionRange(index=1, start=3, end=7))

        assert reader.pull(3) == [3, 4, 5]
        assert reader.pull(3) == [6]
        assert reader.pull(3) == []
        assert reader.position == 7

    def test_seek_repositions(self) -> None:
        reader = ListSource("abcdef").open(PartitionRange(index=0, start=0, end=6))

        reader.seek(4)

        assert reader.pull(10) == ["e", "f"]

    def test_seek_before_range_rejected(self) -> None:
        reader = ListSource(range(10)).open(PartitionRange(index=0, start=5, end=10))

        with pytest.raises(ValueError, match="before the start"):
            reader.seek(2)

    def test_range_past_data_reads_as_exhausted(self) -> None:
        reader = ListSource(range(3)).open(PartitionRange(index=0, start=0, end=10))

        assert reader.pull(10) == [0, 1, 2]
        assert reader.pull(10) == []

    def test_closed_reader_refuses_pull(self) -> None:
        reader = ListSource([1]).open(PartitionRange(index=0, start=0, end=1))
        reader.close()

        assert reader.closed
        with pytest.raises(RuntimeError, match="closed"):
            reader.pull(1)

    def test_records_opened_ranges(self) -> None:
        source = ListSource(range(4))
        first = PartitionRange(index=0, start=0, end=2)
        second = PartitionRange(index=1, start=2, end=4)

        source.open(first)
        source.open(second)

        assert source.opened == [first, second]
        assert source.domain_size() == 4


class TestListSink:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(ListSink(), SinkProtocol)

    def test_keeps_batches_with_context(self) -> None:
        sink = ListSink()

        sink.commit([1, 2], _context(1))
        sink.commit([3], _context(2))

        assert sink.records == [1, 2, 3]
        assert sink.batch_sizes == [2, 1]
        assert [c.chunk_sequence for c, _ in sink.commits] == [1, 2]

    def test_failed_commit_keeps_nothing(self) -> None:
        def reject(batch: list[Any], context: CommitContext) -> None:
            raise OSError("disk full")

        sink = ListSink(fail_with=reject)

        with pytest.raises(OSError, match="disk full"):
            sink.commit([1, 2, 3], _context())

        assert sink.records == []

    def test_batch_is_copied(self) -> None:
        sink = ListSink()
        batch = [1, 2]

        sink.commit(batch, _context())
        batch.append(3)

        assert sink.records == [1, 2]


class TestTransforms:
    def test_function_transform(self) -> None:
        transform = FunctionTransform(str.upper)

        assert isinstance(transform, TransformProtocol)
        assert transform.apply("abc") == "ABC"

    def test_identity(self) -> None:
        record = {"id": 1}

        assert identity_transform().apply(record) is record

    def test_drop_sentinel(self) -> None:
        assert FunctionTransform(lambda r: DROP).apply(1) is DROP
        assert repr(DROP) == "<DROP>"
