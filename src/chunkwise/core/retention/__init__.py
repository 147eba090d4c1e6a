"""Retention management: purge expired executions from the ledger."""

from chunkwise.core.retention.purge import PurgeManager, PurgeResult

__all__ = ["PurgeManager", "PurgeResult"]
