# tests/contracts/test_partition.py
"""Tests for PartitionRange and PartitionPlan invariants."""

import pytest

from chunkwise.contracts import PartitionPlan, PartitionPlanError, PartitionRange


class TestPartitionRange:
    def test_size_and_contains(self) -> None:
        partition = PartitionRange(index=0, start=10, end=20)

        assert partition.size == 10
        assert partition.contains(10)
        assert partition.contains(19)
        assert not partition.contains(20)

    def test_empty_range_is_allowed(self) -> None:
        partition = PartitionRange(index=3, start=7, end=7)

        assert partition.is_empty
        assert partition.size == 0

    def test_start_after_end_rejected(self) -> None:
        with pytest.raises(PartitionPlanError, match="start"):
            PartitionRange(index=0, start=5, end=4)

    def test_negative_index_rejected(self) -> None:
        with pytest.raises(PartitionPlanError):
            PartitionRange(index=-1, start=0, end=1)


class TestPartitionPlan:
    def test_single_covers_domain(self) -> None:
        plan = PartitionPlan.single(0, 250)

        assert len(plan) == 1
        assert plan[0] == PartitionRange(index=0, start=0, end=250)
        assert plan.domain_size == 250

    def test_gap_rejected(self) -> None:
        with pytest.raises(PartitionPlanError, match="gap"):
            PartitionPlan(
                domain_start=0,
                domain_end=10,
                partitions=(PartitionRange(0, 0, 4), PartitionRange(1, 5, 10)),
            )

    def test_overlap_rejected(self) -> None:
        with pytest.raises(PartitionPlanError, match="overlap"):
            PartitionPlan(
                domain_start=0,
                domain_end=10,
                partitions=(PartitionRange(0, 0, 6), PartitionRange(1, 5, 10)),
            )

    def test_incomplete_coverage_rejected(self) -> None:
        with pytest.raises(PartitionPlanError, match="domain ends"):
            PartitionPlan(domain_start=0, domain_end=10, partitions=(PartitionRange(0, 0, 8),))

    def test_out_of_order_indexes_rejected(self) -> None:
        with pytest.raises(PartitionPlanError, match="index"):
            PartitionPlan(
                domain_start=0,
                domain_end=10,
                partitions=(PartitionRange(1, 0, 5), PartitionRange(0, 5, 10)),
            )

    def test_empty_plan_rejected(self) -> None:
        with pytest.raises(PartitionPlanError, match="at least one"):
            PartitionPlan(domain_start=0, domain_end=0, partitions=())

    def test_json_round_trip_preserves_ranges(self) -> None:
        plan = PartitionPlan(
            domain_start=100,
            domain_end=110,
            partitions=(PartitionRange(0, 100, 104), PartitionRange(1, 104, 107), PartitionRange(2, 107, 110)),
        )

        restored = PartitionPlan.from_json(plan.to_json())

        assert restored == plan
