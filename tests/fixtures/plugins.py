# tests/fixtures/plugins.py
"""Test collaborators with scripted behaviour and a work unit factory."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping
from typing import Any

import pytest

from chunkwise.contracts import (
    CommitContext,
    FatalRecordError,
    FaultPolicyConfig,
    RecordValidationError,
    WorkUnitDefinition,
)
from chunkwise.engine.orchestrator import RunOrchestrator
from chunkwise.core.ledger.protocol import ExecutionLedgerProtocol
from chunkwise.plugins import ListSink, ListSource, identity_transform
from chunkwise.plugins.protocols import SinkProtocol, SourceProvider, TransformProtocol


def no_sleep(_seconds: float) -> None:
    """Backoff sleep replacement so retry tests run instantly."""


class ScriptedTransform:
    """Raises scripted exceptions for specific records, then passes them through.

    ``script`` maps a record to the exceptions raised on its successive
    apply() calls. Once a record's script is used up, ``fn(record)`` is
    returned. Thread-safe; calls are counted per record.
    """

    def __init__(
        self,
        script: Mapping[Any, Iterable[BaseException]] | None = None,
        fn: Callable[[Any], Any] = lambda record: record,
    ) -> None:
        self._script = {record: list(errors) for record, errors in (script or {}).items()}
        self._fn = fn
        self._lock = threading.Lock()
        self.calls: dict[Any, int] = {}

    def apply(self, record: Any) -> Any:
        with self._lock:
            self.calls[record] = self.calls.get(record, 0) + 1
            pending = self._script.get(record)
            error = pending.pop(0) if pending else None
        if error is not None:
            raise error
        return self._fn(record)


class AlwaysFailing:
    """Raises a fresh exception from ``factory(record)`` for matching records."""

    def __init__(self, predicate: Callable[[Any], bool], factory: Callable[[Any], BaseException]) -> None:
        self._predicate = predicate
        self._factory = factory

    def apply(self, record: Any) -> Any:
        if self._predicate(record):
            raise self._factory(record)
        return record


class Faults:
    """Transform with mutable fault sets, so a re-run can see the data "fixed"."""

    def __init__(self, *, fatal: set[Any] | None = None, invalid: set[Any] | None = None) -> None:
        self.fatal = fatal or set()
        self.invalid = invalid or set()

    def apply(self, record: Any) -> Any:
        if record in self.fatal:
            raise FatalRecordError(f"fatal at {record}")
        if record in self.invalid:
            raise RecordValidationError(f"invalid {record}")
        return record


class HookedSink(ListSink):
    """ListSink that calls ``after_commit(context)`` once a batch is kept.

    Used to trigger stop() or other side effects at an exact chunk boundary.
    """

    def __init__(self, after_commit: Callable[[CommitContext], None]) -> None:
        super().__init__()
        self._after_commit = after_commit

    def commit(self, batch: list[Any], context: CommitContext) -> None:
        super().commit(batch, context)
        self._after_commit(context)


def make_work_unit(
    *,
    name: str = "unit",
    records: Iterable[Any] | None = None,
    source: SourceProvider | None = None,
    transform: TransformProtocol | None = None,
    sink: SinkProtocol | None = None,
    chunk_size: int = 10,
    partition_count: int = 1,
    retry_limit: int = 0,
    skip_limit: int = 0,
    key_range: tuple[int, int] | None = None,
    **policy: Any,
) -> WorkUnitDefinition:
    """Factory for WorkUnitDefinition with zero retry delays."""
    if source is None:
        source = ListSource(list(records) if records is not None else list(range(25)))
    return WorkUnitDefinition(
        name=name,
        chunk_size=chunk_size,
        source=source,
        transform=transform if transform is not None else identity_transform(),
        sink=sink if sink is not None else ListSink(),
        fault_policy=FaultPolicyConfig(
            retry_limit=retry_limit,
            skip_limit=skip_limit,
            initial_delay_seconds=0.0,
            max_delay_seconds=0.0,
            **policy,
        ),
        partition_count=partition_count,
        key_range=key_range,
    )


def make_orchestrator(ledger: ExecutionLedgerProtocol, **kwargs: Any) -> RunOrchestrator:
    """Factory for RunOrchestrator that never sleeps between retries."""
    kwargs.setdefault("sleep", no_sleep)
    return RunOrchestrator(ledger, **kwargs)


@pytest.fixture
def orchestrator(ledger: ExecutionLedgerProtocol) -> RunOrchestrator:
    """RunOrchestrator over the parametrized ledger fixture."""
    return make_orchestrator(ledger)
