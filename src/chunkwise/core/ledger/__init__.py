# src/chunkwise/core/ledger/__init__.py
"""Execution ledger: durable execution, checkpoint and skip-record state.

Exports:
- ExecutionLedgerProtocol: Interface the engine depends on
- SQLExecutionLedger: SQLAlchemy Core implementation over LedgerDB
- InMemoryExecutionLedger: Dict-backed implementation for tests
- LedgerDB: Connection management (SQLite/PostgreSQL)
"""

from chunkwise.core.ledger.database import LedgerDB, SchemaCompatibilityError
from chunkwise.core.ledger.memory import InMemoryExecutionLedger
from chunkwise.core.ledger.protocol import ExecutionLedgerProtocol
from chunkwise.core.ledger.schema import (
    checkpoints_table,
    executions_table,
    metadata,
    skip_records_table,
)
from chunkwise.core.ledger.sql import SQLExecutionLedger

__all__ = [
    "ExecutionLedgerProtocol",
    "InMemoryExecutionLedger",
    "LedgerDB",
    "SQLExecutionLedger",
    "SchemaCompatibilityError",
    "checkpoints_table",
    "executions_table",
    "metadata",
    "skip_records_table",
]
