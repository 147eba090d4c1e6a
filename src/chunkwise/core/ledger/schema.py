"""SQLAlchemy table definitions for the execution ledger.

Uses SQLAlchemy Core (not ORM) for explicit control over queries
and compatibility with multiple database backends.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    UniqueConstraint,
)

# Shared metadata for all tables
metadata = MetaData()

# === Executions (one row per attempt) ===

executions_table = Table(
    "executions",
    metadata,
    Column("execution_id", String(64), primary_key=True),
    Column("identity_key", String(64), nullable=False),
    Column("name", String(255), nullable=False),
    Column("params_json", Text, nullable=False),
    Column("attempt", Integer, nullable=False),
    Column("resumed_from", String(64), ForeignKey("executions.execution_id")),
    Column("status", String(32), nullable=False),
    Column("started_at", DateTime(timezone=True), nullable=False),
    Column("ended_at", DateTime(timezone=True)),
    Column("failure_category", String(64)),
    Column("failure_message", Text),
    # Serialized PartitionPlan, NULL until the run has been planned
    Column("plan_json", Text),
    # Equals identity_key while the execution is in flight, NULL once
    # terminal. The unique constraint allows at most one in-flight
    # execution per identity across processes.
    Column("active_key", String(64)),
    UniqueConstraint("identity_key", "attempt"),
    UniqueConstraint("active_key", name="uq_executions_active_key"),
)

Index("ix_executions_identity_key", executions_table.c.identity_key)
Index("ix_executions_name_started", executions_table.c.name, executions_table.c.started_at)

# === Checkpoints (latest state per partition, overwritten per chunk) ===

checkpoints_table = Table(
    "checkpoints",
    metadata,
    Column("execution_id", String(64), ForeignKey("executions.execution_id"), nullable=False),
    Column("partition_index", Integer, nullable=False),
    Column("cursor", Integer, nullable=False),
    Column("read_count", Integer, nullable=False),
    Column("write_count", Integer, nullable=False),
    Column("skip_count", Integer, nullable=False),
    Column("filter_count", Integer, nullable=False),
    Column("chunk_sequence", Integer, nullable=False),
    Column("completed", Boolean, nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    PrimaryKeyConstraint("execution_id", "partition_index"),
)

# === Skip records (append-only) ===

skip_records_table = Table(
    "skip_records",
    metadata,
    Column("execution_id", String(64), ForeignKey("executions.execution_id"), nullable=False),
    Column("sequence", Integer, nullable=False),
    Column("partition_index", Integer, nullable=False),
    Column("cursor", Integer, nullable=False),
    Column("payload_json", Text, nullable=False),
    Column("error_category", String(64), nullable=False),
    Column("error_type", String(255), nullable=False),
    Column("error_message", Text, nullable=False),
    Column("recorded_at", DateTime(timezone=True), nullable=False),
    PrimaryKeyConstraint("execution_id", "sequence"),
)
