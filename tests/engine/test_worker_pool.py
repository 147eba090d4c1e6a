# tests/engine/test_worker_pool.py
"""Tests for the bounded WorkerPool."""

import threading
import time

import pytest

from chunkwise.engine.worker_pool import WorkerPool


class TestWorkerPool:
    def test_runs_submitted_tasks(self) -> None:
        with WorkerPool(max_workers=2) as pool:
            futures = [pool.submit(lambda n: n * n, n) for n in range(5)]
            results = [f.result() for f in futures]

        assert results == [0, 1, 4, 9, 16]

    def test_capacity_includes_queue(self) -> None:
        pool = WorkerPool(max_workers=3, queue_capacity=2)

        assert pool.capacity == 5
        assert pool.max_workers == 3
        pool.shutdown()

    def test_zero_queue_capacity_bounds_to_workers(self) -> None:
        with WorkerPool(max_workers=2) as pool:
            assert pool.capacity == 2

    def test_submit_blocks_at_capacity(self) -> None:
        release = threading.Event()
        pool = WorkerPool(max_workers=1, queue_capacity=1)
        pool.submit(release.wait)
        pool.submit(release.wait)
        third_submitted = threading.Event()

        def submit_third() -> None:
            pool.submit(lambda: None)
            third_submitted.set()

        submitter = threading.Thread(target=submit_third)
        submitter.start()

        # Pool is full: the third submit must wait
        assert not third_submitted.wait(timeout=0.2)
        assert pool.outstanding == 2

        release.set()
        assert third_submitted.wait(timeout=5)
        submitter.join(timeout=5)
        pool.shutdown()

        assert pool.peak_outstanding == 2
        assert pool.outstanding == 0

    def test_peak_never_exceeds_capacity(self) -> None:
        with WorkerPool(max_workers=2, queue_capacity=1) as pool:
            for _ in range(10):
                pool.submit(time.sleep, 0.01)

        assert pool.peak_outstanding <= pool.capacity
        assert pool.outstanding == 0

    def test_failing_task_releases_its_slot(self) -> None:
        def boom() -> None:
            raise ValueError("task failed")

        with WorkerPool(max_workers=1) as pool:
            future = pool.submit(boom)
            with pytest.raises(ValueError, match="task failed"):
                future.result()
            # Slot was released, so this does not block
            assert pool.submit(lambda: "ok").result(timeout=5) == "ok"

    def test_submit_after_shutdown(self) -> None:
        pool = WorkerPool(max_workers=1)
        pool.shutdown()

        with pytest.raises(RuntimeError, match="after shutdown"):
            pool.submit(lambda: None)

    @pytest.mark.parametrize(("max_workers", "queue_capacity"), [(0, 0), (1, -1)])
    def test_invalid_sizes(self, max_workers: int, queue_capacity: int) -> None:
        with pytest.raises(ValueError):
            WorkerPool(max_workers=max_workers, queue_capacity=queue_capacity)
