"""SQLAlchemy Core implementation of the execution ledger.

Every multi-statement operation runs inside one LedgerDB.connection()
transaction. Within a process, writes are additionally serialized by a
reentrant lock: the in-memory SQLite database shares a single connection
across threads, and begin() must read-then-insert without interleaving.
Across processes, the unique active_key column rejects a second in-flight
attempt for the same identity.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from typing import Any

import structlog
from sqlalchemy import Connection, delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError

from chunkwise.contracts import (
    ALLOWED_TRANSITIONS,
    BeginResult,
    CheckpointState,
    ExecutionNotFoundError,
    ExecutionRecord,
    ExecutionStatus,
    InvalidTransitionError,
    LedgerIntegrityError,
    PartitionPlan,
    PendingSkip,
    RunIdentity,
    SkipRecord,
)
from chunkwise.core.canonical import canonical_json
from chunkwise.core.ledger._database_ops import DatabaseOps
from chunkwise.core.ledger._helpers import generate_id, now
from chunkwise.core.ledger.database import LedgerDB
from chunkwise.core.ledger.repositories import (
    CheckpointRepository,
    ExecutionRepository,
    SkipRecordRepository,
)
from chunkwise.core.ledger.schema import (
    checkpoints_table,
    executions_table,
    skip_records_table,
)

slog = structlog.get_logger(__name__)


class SQLExecutionLedger:
    """Execution ledger backed by LedgerDB.

    Example:
        db = LedgerDB.from_url("sqlite:///./state/ledger.db")
        ledger = SQLExecutionLedger(db)
        result = ledger.begin(make_identity("nightly_import", {"day": "2024-01-01"}))
    """

    def __init__(self, db: LedgerDB) -> None:
        self._db = db
        self._lock = threading.RLock()
        self._ops = DatabaseOps(db, self._lock)
        self._executions = ExecutionRepository()
        self._checkpoints = CheckpointRepository()
        self._skips = SkipRecordRepository()

    @property
    def db(self) -> LedgerDB:
        return self._db

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def begin(self, identity: RunIdentity) -> BeginResult:
        with self._lock:
            try:
                with self._db.connection() as conn:
                    return self._begin_in_transaction(conn, identity)
            except IntegrityError:
                # Another process inserted an in-flight attempt between our
                # read and our insert. Its row is now the answer.
                latest = self.find(identity)
                if latest is None:
                    raise
                slog.info(
                    "execution_begin_race_lost",
                    identity_key=identity.key,
                    execution_id=latest.execution_id,
                )
                return BeginResult(record=latest, created=False)

    def _begin_in_transaction(self, conn: Connection, identity: RunIdentity) -> BeginResult:
        latest_row = conn.execute(
            select(executions_table)
            .where(executions_table.c.identity_key == identity.key)
            .order_by(executions_table.c.attempt.desc())
            .limit(1)
        ).fetchone()

        latest = self._executions.load(latest_row) if latest_row is not None else None
        if latest is not None and (latest.status.is_active or latest.status == ExecutionStatus.COMPLETED):
            return BeginResult(record=latest, created=False)

        execution_id = generate_id()
        started_at = now()
        attempt = latest.attempt + 1 if latest is not None else 1
        resumed_from = latest.execution_id if latest is not None else None
        plan_json = latest.plan.to_json() if latest is not None and latest.plan is not None else None

        conn.execute(
            insert(executions_table).values(
                execution_id=execution_id,
                identity_key=identity.key,
                name=identity.name,
                params_json=canonical_json(dict(identity.params)),
                attempt=attempt,
                resumed_from=resumed_from,
                status=ExecutionStatus.STARTING.value,
                started_at=started_at,
                plan_json=plan_json,
                active_key=identity.key,
            )
        )

        if latest is not None:
            # Carry the previous attempt's progress forward
            previous = conn.execute(
                select(checkpoints_table).where(checkpoints_table.c.execution_id == latest.execution_id)
            ).fetchall()
            for row in previous:
                conn.execute(
                    insert(checkpoints_table).values(
                        execution_id=execution_id,
                        partition_index=row.partition_index,
                        updated_at=started_at,
                        **self._checkpoints.values(self._checkpoints.load(row)),
                    )
                )

        record = ExecutionRecord(
            execution_id=execution_id,
            identity_key=identity.key,
            name=identity.name,
            params_json=canonical_json(dict(identity.params)),
            attempt=attempt,
            status=ExecutionStatus.STARTING,
            started_at=started_at,
            resumed_from=resumed_from,
            plan=latest.plan if latest is not None else None,
        )
        slog.debug(
            "execution_row_created",
            execution_id=execution_id,
            name=identity.name,
            attempt=attempt,
            resumed_from=resumed_from,
        )
        return BeginResult(record=record, created=True)

    def transition(self, execution_id: str, expected: ExecutionStatus, new: ExecutionStatus) -> bool:
        if new not in ALLOWED_TRANSITIONS[expected]:
            raise InvalidTransitionError(execution_id, expected, new)
        values: dict[str, Any] = {"status": new.value}
        if new.is_terminal:
            values["ended_at"] = now()
            values["active_key"] = None
        with self._lock:
            updated = self._ops.execute_update(
                update(executions_table)
                .where(executions_table.c.execution_id == execution_id)
                .where(executions_table.c.status == expected.value)
                .values(**values)
            )
            if updated == 0:
                # Distinguish "lost the race" from "no such execution"
                self.get(execution_id)
                return False
        return True

    def finish(
        self,
        execution_id: str,
        status: ExecutionStatus,
        *,
        failure_category: str | None = None,
        failure_message: str | None = None,
    ) -> ExecutionRecord:
        if not status.is_terminal:
            raise LedgerIntegrityError(f"finish() requires a terminal status, got {status.value!r}")
        with self._lock, self._db.connection() as conn:
            current = self._get_in(conn, execution_id)
            if status not in ALLOWED_TRANSITIONS[current.status]:
                raise InvalidTransitionError(execution_id, current.status, status)
            conn.execute(
                update(executions_table)
                .where(executions_table.c.execution_id == execution_id)
                .values(
                    status=status.value,
                    ended_at=now(),
                    failure_category=failure_category,
                    failure_message=failure_message,
                    active_key=None,
                )
            )
            return self._get_in(conn, execution_id)

    def save_plan(self, execution_id: str, plan: PartitionPlan) -> None:
        with self._lock:
            self._ops.execute_update_one(
                update(executions_table)
                .where(executions_table.c.execution_id == execution_id)
                .values(plan_json=plan.to_json())
            )

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    def checkpoint(
        self,
        execution_id: str,
        partition_index: int,
        state: CheckpointState,
        skips: Sequence[PendingSkip] = (),
    ) -> list[SkipRecord]:
        with self._lock, self._db.connection() as conn:
            current = self._get_in(conn, execution_id)
            if current.is_terminal:
                raise LedgerIntegrityError(
                    f"Cannot checkpoint execution {execution_id}: status is terminal ({current.status.value})"
                )
            values = self._checkpoints.values(state)
            updated = conn.execute(
                update(checkpoints_table)
                .where(checkpoints_table.c.execution_id == execution_id)
                .where(checkpoints_table.c.partition_index == partition_index)
                .values(updated_at=now(), **values)
            ).rowcount
            if updated == 0:
                conn.execute(
                    insert(checkpoints_table).values(
                        execution_id=execution_id,
                        partition_index=partition_index,
                        updated_at=now(),
                        **values,
                    )
                )
            return self._append_skips_in(conn, execution_id, partition_index, skips)

    def checkpoints(self, execution_id: str) -> dict[int, CheckpointState]:
        rows = self._ops.execute_fetchall(
            select(checkpoints_table)
            .where(checkpoints_table.c.execution_id == execution_id)
            .order_by(checkpoints_table.c.partition_index)
        )
        return {row.partition_index: self._checkpoints.load(row) for row in rows}

    # ------------------------------------------------------------------
    # Skip records
    # ------------------------------------------------------------------

    def record_skip(
        self,
        execution_id: str,
        *,
        partition_index: int,
        cursor: int,
        payload_json: str,
        error_category: str,
        error_type: str,
        error_message: str,
    ) -> SkipRecord:
        skip = PendingSkip(
            cursor=cursor,
            payload_json=payload_json,
            error_category=error_category,
            error_type=error_type,
            error_message=error_message,
        )
        with self._lock, self._db.connection() as conn:
            self._get_in(conn, execution_id)
            (record,) = self._append_skips_in(conn, execution_id, partition_index, [skip])
        return record

    def _append_skips_in(
        self,
        conn: Connection,
        execution_id: str,
        partition_index: int,
        skips: Sequence[PendingSkip],
    ) -> list[SkipRecord]:
        if not skips:
            return []
        last = conn.execute(
            select(func.max(skip_records_table.c.sequence)).where(skip_records_table.c.execution_id == execution_id)
        ).scalar()
        recorded_at = now()
        records = [
            SkipRecord(
                execution_id=execution_id,
                sequence=(last or 0) + offset,
                partition_index=partition_index,
                cursor=skip.cursor,
                payload_json=skip.payload_json,
                error_category=skip.error_category,
                error_type=skip.error_type,
                error_message=skip.error_message,
                recorded_at=recorded_at,
            )
            for offset, skip in enumerate(skips, start=1)
        ]
        conn.execute(
            insert(skip_records_table),
            [
                {
                    "execution_id": r.execution_id,
                    "sequence": r.sequence,
                    "partition_index": r.partition_index,
                    "cursor": r.cursor,
                    "payload_json": r.payload_json,
                    "error_category": r.error_category,
                    "error_type": r.error_type,
                    "error_message": r.error_message,
                    "recorded_at": r.recorded_at,
                }
                for r in records
            ],
        )
        return records

    def skip_records(self, execution_id: str) -> list[SkipRecord]:
        rows = self._ops.execute_fetchall(
            select(skip_records_table)
            .where(skip_records_table.c.execution_id == execution_id)
            .order_by(skip_records_table.c.sequence)
        )
        return [self._skips.load(row) for row in rows]

    def skip_record_count(self, execution_id: str) -> int:
        count = self._ops.execute_scalar(
            select(func.count()).select_from(skip_records_table).where(skip_records_table.c.execution_id == execution_id)
        )
        return int(count or 0)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find(self, identity: RunIdentity) -> ExecutionRecord | None:
        row = self._ops.execute_fetchone(
            select(executions_table)
            .where(executions_table.c.identity_key == identity.key)
            .order_by(executions_table.c.attempt.desc())
            .limit(1)
        )
        return self._executions.load(row) if row is not None else None

    def get(self, execution_id: str) -> ExecutionRecord:
        row = self._ops.execute_fetchone(
            select(executions_table).where(executions_table.c.execution_id == execution_id)
        )
        if row is None:
            raise ExecutionNotFoundError(execution_id)
        return self._executions.load(row)

    def list_executions(self, *, name: str | None = None, limit: int = 50) -> list[ExecutionRecord]:
        query = select(executions_table)
        if name is not None:
            query = query.where(executions_table.c.name == name)
        query = query.order_by(executions_table.c.started_at.desc(), executions_table.c.attempt.desc()).limit(limit)
        return [self._executions.load(row) for row in self._ops.execute_fetchall(query)]

    def _get_in(self, conn: Connection, execution_id: str) -> ExecutionRecord:
        row = conn.execute(select(executions_table).where(executions_table.c.execution_id == execution_id)).fetchone()
        if row is None:
            raise ExecutionNotFoundError(execution_id)
        return self._executions.load(row)


def delete_executions(conn: Connection, execution_ids: list[str]) -> tuple[int, int, int]:
    """Delete executions and their dependent rows inside an open transaction.

    Later attempts that point at a deleted attempt through resumed_from
    keep their own data; only the link is cleared.

    Returns:
        (executions, checkpoints, skip_records) deleted
    """
    if not execution_ids:
        return (0, 0, 0)
    conn.execute(
        update(executions_table)
        .where(executions_table.c.resumed_from.in_(execution_ids))
        .where(executions_table.c.execution_id.not_in(execution_ids))
        .values(resumed_from=None)
    )
    # Self-references among the doomed rows would block the delete
    conn.execute(
        update(executions_table).where(executions_table.c.execution_id.in_(execution_ids)).values(resumed_from=None)
    )
    skips = conn.execute(delete(skip_records_table).where(skip_records_table.c.execution_id.in_(execution_ids))).rowcount
    checkpoints = conn.execute(
        delete(checkpoints_table).where(checkpoints_table.c.execution_id.in_(execution_ids))
    ).rowcount
    executions = conn.execute(delete(executions_table).where(executions_table.c.execution_id.in_(execution_ids))).rowcount
    return (executions, checkpoints, skips)
