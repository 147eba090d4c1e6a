# src/chunkwise/plugins/protocols.py
"""Collaborator protocols: what sources, transforms and sinks must provide.

These protocols define the methods the engine calls. They're used for type
checking; collaborators are plain objects wired explicitly into a
WorkUnitDefinition, with no registration step.

Collaborator Types:
- SourceProvider: Reports the input domain and opens range-bounded readers
- SourceReader: Reads records from one partition range, sequentially
- Transform: Maps one record to a record, DROP, or a TransformResult
- Sink: Durably commits one batch per chunk
"""

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from chunkwise.contracts import CommitContext, PartitionRange, TransformResult
    from chunkwise.plugins.sentinels import DropSentinel


@runtime_checkable
class SourceReader(Protocol):
    """Sequential reader over one partition range.

    Offsets are absolute positions in the input domain. A reader never
    returns records outside the range it was opened for.

    Lifecycle:
    1. provider.open(range) - reader positioned at range.start
    2. seek(cursor) - optional, repositions for resume
    3. pull(n) - repeated until it returns an empty list
    4. close() - always called, even on failure
    """

    def seek(self, cursor: int) -> None:
        """Position the reader so the next pull starts at ``cursor``."""
        ...

    def pull(self, max_records: int) -> list[Any]:
        """Return up to max_records records. Empty list means exhausted."""
        ...

    def close(self) -> None: ...


@runtime_checkable
class SourceProvider(Protocol):
    """Factory for range-bounded readers.

    Each partition opens its own reader, so readers never share mutable
    state. open() may be called concurrently from worker threads.
    """

    def domain_size(self) -> int:
        """Number of addressable records; the domain is [0, domain_size())."""
        ...

    def open(self, partition: "PartitionRange") -> SourceReader: ...


@runtime_checkable
class TransformProtocol(Protocol):
    """Per-record transform.

    Returns the output record, DROP to filter the record, or a
    TransformResult for explicit control. Raising hands the error to the
    fault policy. Must be safe to call from several partitions at once.

    Example:
        class Upper:
            def apply(self, record: str) -> str:
                if not record:
                    raise RecordValidationError("empty record")
                return record.upper()
    """

    def apply(self, record: Any) -> "Any | DropSentinel | TransformResult": ...


@runtime_checkable
class SinkProtocol(Protocol):
    """Chunk-level output.

    commit() writes the whole batch or nothing and raises on failure. It
    may be called concurrently for different partitions, and may receive
    the last chunk of a partition twice after a crash (context carries an
    idempotency key).
    """

    def commit(self, batch: list[Any], context: "CommitContext") -> None: ...
