"""Database operation helpers to reduce boilerplate in the SQL ledger.

Consolidates the repeated `with self._db.connection() as conn:` pattern.
"""

from __future__ import annotations

import threading
from contextlib import nullcontext
from typing import TYPE_CHECKING, Any

from sqlalchemy import Executable
from sqlalchemy.engine import Row

from chunkwise.contracts import LedgerIntegrityError

if TYPE_CHECKING:
    from chunkwise.core.ledger.database import LedgerDB


class DatabaseOps:
    """Helper for single-statement database operations.

    Multi-statement operations that must be atomic (begin, checkpoint,
    record_skip) open their own transaction via LedgerDB.connection().
    When a lock is given, every statement runs while holding it.
    """

    def __init__(self, db: LedgerDB, lock: threading.RLock | None = None) -> None:
        self._db = db
        self._lock = lock

    def execute_fetchone(self, query: Executable) -> Row[Any] | None:
        """Execute query and return single row or None."""
        with self._guard(), self._db.connection() as conn:
            result = conn.execute(query)
            return result.fetchone()

    def execute_fetchall(self, query: Executable) -> list[Row[Any]]:
        """Execute query and return all rows."""
        with self._guard(), self._db.connection() as conn:
            result = conn.execute(query)
            return list(result.fetchall())

    def execute_scalar(self, query: Executable) -> Any:
        """Execute query and return the first column of the first row."""
        with self._guard(), self._db.connection() as conn:
            return conn.execute(query).scalar()

    def execute_update(self, stmt: Executable) -> int:
        """Execute update statement and return the affected row count."""
        with self._guard(), self._db.connection() as conn:
            result = conn.execute(stmt)
            return result.rowcount

    def execute_update_one(self, stmt: Executable) -> None:
        """Execute update statement that must hit exactly one row.

        Raises:
            LedgerIntegrityError: If zero rows are affected
        """
        if self.execute_update(stmt) == 0:
            raise LedgerIntegrityError("execute_update_one: zero rows affected - target row does not exist")

    def _guard(self) -> Any:
        return self._lock if self._lock is not None else nullcontext()
