"""Bounded worker pool for partition execution.

A thin wrapper over ThreadPoolExecutor whose submit() blocks once
max_workers + queue_capacity tasks are outstanding. One pool is built per
step run and handed to Partitioner.execute(); it is never a process-wide
singleton.
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from threading import BoundedSemaphore, Lock
from typing import Any, Self, TypeVar

T = TypeVar("T")


class WorkerPool:
    """Thread pool with a bounded submission queue.

    Safe for concurrent submission from several threads.

    Usage:
        with WorkerPool(max_workers=4, queue_capacity=16) as pool:
            futures = [pool.submit(run_partition, p) for p in plan.partitions]
    """

    def __init__(self, max_workers: int, queue_capacity: int = 0, *, thread_name_prefix: str = "chunkwise") -> None:
        """Initialize the pool.

        Args:
            max_workers: Maximum tasks running at once
            queue_capacity: Tasks that may wait for a worker before submit() blocks
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        if queue_capacity < 0:
            raise ValueError(f"queue_capacity must be >= 0, got {queue_capacity}")
        self._max_workers = max_workers
        self._capacity = max_workers + queue_capacity
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=thread_name_prefix)
        # Released when a task finishes, acquired before it is queued
        self._slots = BoundedSemaphore(self._capacity)
        self._state_lock = Lock()
        self._outstanding = 0
        self._peak_outstanding = 0
        self._shutdown = False

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def capacity(self) -> int:
        """Maximum outstanding (running + queued) tasks."""
        return self._capacity

    @property
    def outstanding(self) -> int:
        with self._state_lock:
            return self._outstanding

    @property
    def peak_outstanding(self) -> int:
        with self._state_lock:
            return self._peak_outstanding

    def submit(self, fn: Callable[..., T], /, *args: Any, **kwargs: Any) -> Future[T]:
        """Queue fn(*args, **kwargs), blocking while the pool is at capacity.

        Raises:
            RuntimeError: If the pool has been shut down
        """
        if self._shutdown:
            raise RuntimeError("cannot submit to a WorkerPool after shutdown")
        self._slots.acquire()
        with self._state_lock:
            self._outstanding += 1
            self._peak_outstanding = max(self._peak_outstanding, self._outstanding)
        try:
            future = self._executor.submit(fn, *args, **kwargs)
        except BaseException:
            self._release()
            raise
        future.add_done_callback(lambda _: self._release())
        return future

    def _release(self) -> None:
        with self._state_lock:
            self._outstanding -= 1
        self._slots.release()

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the pool.

        Args:
            wait: If True, wait for running and queued tasks to complete
        """
        self._shutdown = True
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.shutdown(wait=True)
