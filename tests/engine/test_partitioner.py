# tests/engine/test_partitioner.py
"""Tests for domain splitting and partition execution."""

import threading

import pytest

from chunkwise.contracts import (
    CheckpointState,
    PartitionOutcome,
    PartitionPlan,
    PartitionPlanError,
    PartitionRange,
    PartitionStatus,
)
from chunkwise.engine.partitioner import Partitioner, split_domain
from chunkwise.engine.worker_pool import WorkerPool
from chunkwise.plugins import ListSource
from tests.fixtures.plugins import make_work_unit


class TestSplitDomain:
    def test_even_split(self) -> None:
        plan = split_domain(0, 100, 4)

        assert [(p.start, p.end) for p in plan.partitions] == [(0, 25), (25, 50), (50, 75), (75, 100)]

    def test_remainder_goes_to_leading_partitions(self) -> None:
        plan = split_domain(0, 10, 3)

        assert [p.size for p in plan.partitions] == [4, 3, 3]

    def test_offset_domain(self) -> None:
        plan = split_domain(100, 110, 2)

        assert [(p.start, p.end) for p in plan.partitions] == [(100, 105), (105, 110)]

    def test_more_partitions_than_records(self) -> None:
        plan = split_domain(0, 2, 4)

        assert [p.size for p in plan.partitions] == [1, 1, 0, 0]
        assert plan[3].is_empty

    def test_deterministic(self) -> None:
        assert split_domain(0, 1_000, 7) == split_domain(0, 1_000, 7)
        assert split_domain(0, 7, 1) == PartitionPlan.single(0, 7)

    @pytest.mark.parametrize(("start", "end", "count"), [(0, 10, 0), (-1, 10, 2), (10, 5, 2)])
    def test_invalid_arguments(self, start: int, end: int, count: int) -> None:
        with pytest.raises(PartitionPlanError):
            split_domain(start, end, count)


class TestPlan:
    def test_domain_from_source_size(self) -> None:
        work_unit = make_work_unit(records=range(9), partition_count=3)

        plan = Partitioner().plan(work_unit)

        assert (plan.domain_start, plan.domain_end) == (0, 9)
        assert len(plan) == 3

    def test_explicit_key_range_wins(self) -> None:
        work_unit = make_work_unit(records=range(100), partition_count=2, key_range=(10, 30))

        plan = Partitioner().plan(work_unit)

        assert [(p.start, p.end) for p in plan.partitions] == [(10, 20), (20, 30)]


class TestExecute:
    def test_runs_every_partition_and_orders_outcomes(self) -> None:
        plan = split_domain(0, 40, 4)
        seen: list[int] = []
        lock = threading.Lock()

        def run_partition(partition: PartitionRange) -> PartitionOutcome:
            with lock:
                seen.append(partition.index)
            return PartitionOutcome(partition.index, PartitionStatus.COMPLETED, CheckpointState(cursor=partition.end, completed=True))

        with WorkerPool(max_workers=2) as pool:
            outcomes = Partitioner().execute(plan, pool, run_partition)

        assert sorted(seen) == [0, 1, 2, 3]
        assert [o.partition_index for o in outcomes] == [0, 1, 2, 3]

    def test_completed_partitions_are_not_resubmitted(self) -> None:
        plan = split_domain(0, 30, 3)
        done = CheckpointState(cursor=10, read_count=10, write_count=10, chunk_sequence=1, completed=True)
        in_progress = CheckpointState(cursor=15, read_count=5, write_count=5, chunk_sequence=1)
        submitted: list[int] = []

        def run_partition(partition: PartitionRange) -> PartitionOutcome:
            submitted.append(partition.index)
            return PartitionOutcome(partition.index, PartitionStatus.COMPLETED, CheckpointState(cursor=partition.end, completed=True))

        with WorkerPool(max_workers=1) as pool:
            outcomes = Partitioner().execute(plan, pool, run_partition, completed={0: done, 1: in_progress})

        assert sorted(submitted) == [1, 2]
        assert outcomes[0].checkpoint == done
        assert all(o.status is PartitionStatus.COMPLETED for o in outcomes)

    def test_bug_in_run_partition_propagates(self) -> None:
        def run_partition(partition: PartitionRange) -> PartitionOutcome:
            raise RuntimeError("engine bug")

        with WorkerPool(max_workers=1) as pool, pytest.raises(RuntimeError, match="engine bug"):
            Partitioner().execute(split_domain(0, 4, 2), pool, run_partition)

    def test_each_partition_opens_its_own_reader(self) -> None:
        source = ListSource(range(12))
        plan = split_domain(0, 12, 3)

        def run_partition(partition: PartitionRange) -> PartitionOutcome:
            reader = source.open(partition)
            records = reader.pull(100)
            reader.close()
            return PartitionOutcome(
                partition.index,
                PartitionStatus.COMPLETED,
                CheckpointState(cursor=partition.start + len(records), read_count=len(records), completed=True),
            )

        with WorkerPool(max_workers=3) as pool:
            outcomes = Partitioner().execute(plan, pool, run_partition)

        assert sorted(source.opened, key=lambda p: p.index) == list(plan.partitions)
        assert [o.checkpoint.read_count for o in outcomes] == [4, 4, 4]
