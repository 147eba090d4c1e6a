"""In-memory reference collaborators.

Used by the test suite and by applications embedding the engine over data
that already fits in memory. They are not connectors: nothing here reads
files, queues or tables.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from typing import Any

from chunkwise.contracts import CommitContext, PartitionRange


class ListReader:
    """Reader over one range of a ListSource."""

    def __init__(self, records: Sequence[Any], partition: PartitionRange) -> None:
        self._records = records
        self._start = partition.start
        # A range past the end of the data reads as exhausted
        self._end = min(partition.end, len(records))
        self._position = partition.start
        self._closed = False

    @property
    def position(self) -> int:
        return self._position

    @property
    def closed(self) -> bool:
        return self._closed

    def seek(self, cursor: int) -> None:
        if cursor < self._start:
            raise ValueError(f"cursor {cursor} is before the start of this reader's range ({self._start})")
        self._position = cursor

    def pull(self, max_records: int) -> list[Any]:
        if self._closed:
            raise RuntimeError("pull() on a closed reader")
        if max_records < 1 or self._position >= self._end:
            return []
        stop = min(self._position + max_records, self._end)
        batch = list(self._records[self._position : stop])
        self._position = stop
        return batch

    def close(self) -> None:
        self._closed = True


class ListSource:
    """SourceProvider over an in-memory sequence.

    Example:
        source = ListSource(range(250))
        reader = source.open(PartitionRange(index=0, start=0, end=250))
        first = reader.pull(100)
    """

    def __init__(self, records: Sequence[Any]) -> None:
        self._records = list(records)
        self._lock = threading.Lock()
        self._opened: list[PartitionRange] = []

    @property
    def opened(self) -> list[PartitionRange]:
        """Ranges opened so far, in call order."""
        with self._lock:
            return list(self._opened)

    def domain_size(self) -> int:
        return len(self._records)

    def open(self, partition: PartitionRange) -> ListReader:
        with self._lock:
            self._opened.append(partition)
        return ListReader(self._records, partition)


class ListSink:
    """Lock-guarded, all-or-nothing in-memory sink.

    Every successful commit is kept with its CommitContext so tests can
    inspect chunk boundaries. ``fail_with`` may raise to simulate a commit
    failure; nothing from that batch is kept.
    """

    def __init__(self, *, fail_with: Callable[[list[Any], CommitContext], None] | None = None) -> None:
        self._lock = threading.Lock()
        self._commits: list[tuple[CommitContext, list[Any]]] = []
        self._fail_with = fail_with

    def commit(self, batch: list[Any], context: CommitContext) -> None:
        staged = list(batch)
        if self._fail_with is not None:
            self._fail_with(staged, context)
        with self._lock:
            self._commits.append((context, staged))

    @property
    def commits(self) -> list[tuple[CommitContext, list[Any]]]:
        with self._lock:
            return list(self._commits)

    @property
    def records(self) -> list[Any]:
        """All committed records, in commit order."""
        with self._lock:
            return [record for _, batch in self._commits for record in batch]

    @property
    def batch_sizes(self) -> list[int]:
        with self._lock:
            return [len(batch) for _, batch in self._commits]


class FunctionTransform:
    """Adapts a plain callable to the transform protocol."""

    def __init__(self, fn: Callable[[Any], Any]) -> None:
        self._fn = fn

    def apply(self, record: Any) -> Any:
        return self._fn(record)


def identity_transform() -> FunctionTransform:
    """Transform that passes every record through unchanged."""
    return FunctionTransform(lambda record: record)
