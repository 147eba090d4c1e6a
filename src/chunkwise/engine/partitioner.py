"""Partitioner: split a work unit's input domain and run the partitions.

plan() is deterministic: the same domain and partition count always give
the same ranges, so a persisted plan and a freshly computed one agree.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping

import structlog

from chunkwise.contracts import (
    CheckpointState,
    PartitionOutcome,
    PartitionPlan,
    PartitionPlanError,
    PartitionRange,
    PartitionStatus,
    WorkUnitDefinition,
)
from chunkwise.engine.worker_pool import WorkerPool

slog = structlog.get_logger(__name__)


def split_domain(domain_start: int, domain_end: int, partition_count: int) -> PartitionPlan:
    """Split [domain_start, domain_end) into contiguous ranges.

    Sizes differ by at most one, larger ranges first. When there are more
    partitions than records the trailing ranges are empty.
    """
    if partition_count < 1:
        raise PartitionPlanError(f"partition_count must be >= 1, got {partition_count}")
    if domain_start < 0 or domain_start > domain_end:
        raise PartitionPlanError(f"invalid domain [{domain_start}, {domain_end})")

    base, extra = divmod(domain_end - domain_start, partition_count)
    ranges: list[PartitionRange] = []
    start = domain_start
    for index in range(partition_count):
        size = base + (1 if index < extra else 0)
        ranges.append(PartitionRange(index=index, start=start, end=start + size))
        start += size
    return PartitionPlan(domain_start=domain_start, domain_end=domain_end, partitions=tuple(ranges))


class Partitioner:
    """Plans and executes the partitions of one step."""

    def plan(self, work_unit: WorkUnitDefinition) -> PartitionPlan:
        """Partition plan for a work unit.

        The domain is the explicit key_range when given, otherwise
        [0, source.domain_size()).
        """
        if work_unit.key_range is not None:
            domain_start, domain_end = work_unit.key_range
        else:
            domain_start, domain_end = 0, work_unit.source.domain_size()
        plan = split_domain(domain_start, domain_end, work_unit.partition_count)
        slog.debug(
            "partition_plan_created",
            work_unit=work_unit.name,
            domain_start=domain_start,
            domain_end=domain_end,
            partitions=len(plan),
        )
        return plan

    def execute(
        self,
        plan: PartitionPlan,
        worker_pool: WorkerPool,
        run_partition: Callable[[PartitionRange], PartitionOutcome],
        *,
        completed: Mapping[int, CheckpointState] | None = None,
    ) -> list[PartitionOutcome]:
        """Run every pending partition on the pool.

        Partitions whose checkpoint in ``completed`` is marked completed
        are not submitted again; they are reported as COMPLETED with that
        checkpoint.

        Returns:
            One outcome per partition, ordered by partition index
        """
        finished = completed or {}
        outcomes: dict[int, PartitionOutcome] = {}
        futures = {}
        for partition in plan.partitions:
            checkpoint = finished.get(partition.index)
            if checkpoint is not None and checkpoint.completed:
                outcomes[partition.index] = PartitionOutcome(partition.index, PartitionStatus.COMPLETED, checkpoint)
                continue
            futures[partition.index] = worker_pool.submit(run_partition, partition)

        for index, future in futures.items():
            # run_partition never raises for record or collaborator errors;
            # anything escaping here is a bug and propagates.
            outcomes[index] = future.result()

        return [outcomes[index] for index in sorted(outcomes)]
