"""Purge manager for ledger rows based on retention policy.

Identifies terminal executions (COMPLETED, FAILED, STOPPED) that ended
before the retention cutoff and deletes them together with their
checkpoints and skip records. In-flight executions are never touched.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from time import perf_counter
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import and_, select

from chunkwise.contracts import TERMINAL_STATUSES
from chunkwise.core.ledger.schema import executions_table
from chunkwise.core.ledger.sql import delete_executions

if TYPE_CHECKING:
    from chunkwise.core.ledger.database import LedgerDB

slog = structlog.get_logger(__name__)


@dataclass
class PurgeResult:
    """Result of a purge operation."""

    deleted_executions: int
    deleted_checkpoints: int
    deleted_skip_records: int
    duration_seconds: float


class PurgeManager:
    """Deletes expired executions from the ledger database."""

    def __init__(self, db: "LedgerDB") -> None:
        """Initialize PurgeManager.

        Args:
            db: Ledger database connection
        """
        self._db = db

    def find_expired_executions(
        self,
        retention_days: int,
        as_of: datetime | None = None,
    ) -> list[str]:
        """Find executions eligible for deletion based on retention policy.

        Args:
            retention_days: Number of days to retain executions after they end
            as_of: Reference datetime for cutoff calculation (defaults to now)

        Returns:
            execution_id values of expired terminal executions, oldest first
        """
        if retention_days < 0:
            raise ValueError(f"retention_days must be >= 0, got {retention_days}")
        if as_of is None:
            as_of = datetime.now(UTC)

        cutoff = as_of - timedelta(days=retention_days)

        query = (
            select(executions_table.c.execution_id)
            .where(
                and_(
                    executions_table.c.status.in_([s.value for s in TERMINAL_STATUSES]),
                    executions_table.c.ended_at.isnot(None),
                    executions_table.c.ended_at < cutoff,
                )
            )
            .order_by(executions_table.c.ended_at)
        )

        with self._db.connection() as conn:
            return [row[0] for row in conn.execute(query)]

    def purge(self, retention_days: int, as_of: datetime | None = None) -> PurgeResult:
        """Delete every expired execution in one transaction."""
        start = perf_counter()
        expired = self.find_expired_executions(retention_days, as_of=as_of)

        with self._db.connection() as conn:
            executions, checkpoints, skips = delete_executions(conn, expired)

        result = PurgeResult(
            deleted_executions=executions,
            deleted_checkpoints=checkpoints,
            deleted_skip_records=skips,
            duration_seconds=perf_counter() - start,
        )
        slog.info(
            "ledger_purged",
            retention_days=retention_days,
            deleted_executions=result.deleted_executions,
            deleted_checkpoints=result.deleted_checkpoints,
            deleted_skip_records=result.deleted_skip_records,
        )
        return result
