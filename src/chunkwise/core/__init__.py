# src/chunkwise/core/__init__.py
"""Core infrastructure: Canonical hashing, Configuration, Events, Ledger, Logging, Retention."""

from chunkwise.core.canonical import (
    CANONICAL_VERSION,
    canonical_json,
    identity_key,
    make_identity,
    stable_hash,
)
from chunkwise.core.config import (
    ChunkwiseSettings,
    ConcurrencySettings,
    FaultPolicySettings,
    LedgerSettings,
    LoggingSettings,
    WorkUnitSettings,
    load_settings,
    resolve_config,
)
from chunkwise.core.events import EventBus, EventBusProtocol, NullEventBus
from chunkwise.core.ledger import (
    ExecutionLedgerProtocol,
    InMemoryExecutionLedger,
    LedgerDB,
    SQLExecutionLedger,
)
from chunkwise.core.logging import configure_logging, get_logger

__all__ = [
    "CANONICAL_VERSION",
    "ChunkwiseSettings",
    "ConcurrencySettings",
    "EventBus",
    "EventBusProtocol",
    "ExecutionLedgerProtocol",
    "FaultPolicySettings",
    "InMemoryExecutionLedger",
    "LedgerDB",
    "LedgerSettings",
    "LoggingSettings",
    "NullEventBus",
    "SQLExecutionLedger",
    "WorkUnitSettings",
    "canonical_json",
    "configure_logging",
    "get_logger",
    "identity_key",
    "load_settings",
    "make_identity",
    "stable_hash",
    "resolve_config",
]
