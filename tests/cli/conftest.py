# tests/cli/conftest.py
"""Shared fixtures and helpers for CLI tests."""

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest
import structlog

from chunkwise.contracts import FatalRecordError, RecordValidationError
from chunkwise.core.ledger import LedgerDB, SQLExecutionLedger
from tests.fixtures.plugins import AlwaysFailing, make_orchestrator, make_work_unit


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    """The CLI callback configures logging against the runner's streams; undo it."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
    structlog.reset_defaults()


@pytest.fixture
def ledger_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
def populated_ledger(ledger_url: str) -> dict[str, str]:
    """Ledger file holding one completed execution (one skip) and one failed execution.

    Returns:
        {"completed": execution_id, "failed": execution_id}
    """
    with LedgerDB.from_url(ledger_url) as db:
        orchestrator = make_orchestrator(SQLExecutionLedger(db))
        completed = orchestrator.run(
            make_work_unit(
                name="import",
                partition_count=2,
                skip_limit=2,
                transform=AlwaysFailing(lambda r: r == 3, lambda r: RecordValidationError("bad row")),
            )
        )
        failed = orchestrator.run(
            make_work_unit(
                name="export",
                transform=AlwaysFailing(lambda r: r == 0, lambda r: FatalRecordError("target offline")),
            )
        )
    return {"completed": completed.execution_id, "failed": failed.execution_id}

