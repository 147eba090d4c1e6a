"""Partition plan contracts.

A PartitionPlan divides one work unit's input domain into ordered,
disjoint, gap-free ranges whose union is exactly the domain. The
invariants are checked at construction so an invalid plan can never be
persisted or executed.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from chunkwise.contracts.errors import PartitionPlanError


@dataclass(frozen=True)
class PartitionRange:
    """Half-open range [start, end) of absolute offsets into the input domain."""

    index: int
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.index < 0:
            raise PartitionPlanError(f"partition index must be >= 0, got {self.index}")
        if self.start > self.end:
            raise PartitionPlanError(f"partition {self.index}: start ({self.start}) > end ({self.end})")

    @property
    def size(self) -> int:
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def contains(self, offset: int) -> bool:
        return self.start <= offset < self.end


@dataclass(frozen=True)
class PartitionPlan:
    """Ordered partition ranges covering [domain_start, domain_end).

    Invariants (enforced in __post_init__):
    - at least one partition
    - indexes are 0..N-1 in order
    - first range starts at domain_start, last range ends at domain_end
    - each range starts where the previous one ended (no gaps, no overlap)
    """

    domain_start: int
    domain_end: int
    partitions: tuple[PartitionRange, ...]

    def __post_init__(self) -> None:
        if self.domain_start > self.domain_end:
            raise PartitionPlanError(f"domain start ({self.domain_start}) > end ({self.domain_end})")
        if not self.partitions:
            raise PartitionPlanError("partition plan must contain at least one partition")

        expected_start = self.domain_start
        for position, partition in enumerate(self.partitions):
            if partition.index != position:
                raise PartitionPlanError(f"partition at position {position} has index {partition.index}")
            if partition.start != expected_start:
                kind = "overlap" if partition.start < expected_start else "gap"
                raise PartitionPlanError(
                    f"partition {partition.index} starts at {partition.start}, expected {expected_start} ({kind})"
                )
            expected_start = partition.end

        if expected_start != self.domain_end:
            raise PartitionPlanError(f"partitions end at {expected_start}, domain ends at {self.domain_end}")

    def __len__(self) -> int:
        return len(self.partitions)

    def __getitem__(self, index: int) -> PartitionRange:
        return self.partitions[index]

    @property
    def domain_size(self) -> int:
        return self.domain_end - self.domain_start

    @classmethod
    def single(cls, domain_start: int, domain_end: int) -> PartitionPlan:
        """Degenerate one-partition plan covering the whole domain."""
        return cls(
            domain_start=domain_start,
            domain_end=domain_end,
            partitions=(PartitionRange(index=0, start=domain_start, end=domain_end),),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain_start": self.domain_start,
            "domain_end": self.domain_end,
            "partitions": [[p.start, p.end] for p in self.partitions],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PartitionPlan:
        # Our own persisted data - missing keys crash
        return cls(
            domain_start=data["domain_start"],
            domain_end=data["domain_end"],
            partitions=tuple(
                PartitionRange(index=i, start=start, end=end) for i, (start, end) in enumerate(data["partitions"])
            ),
        )

    @classmethod
    def from_json(cls, raw: str) -> PartitionPlan:
        return cls.from_dict(json.loads(raw))
