# runners.py: parallel work substrate for the planner kernels
# Every work item writes only its own output slot; callers reduce after barrier().

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Tuple

from plan_utils import AcceleratorFailure


def chunk_bounds(n: int, chunk: int) -> List[Tuple[int, int]]:
    chunk = max(1, int(chunk))
    return [(a, min(a + chunk, n)) for a in range(0, n, chunk)]


class ParallelRunner:
    """for_each(n, fn) schedules fn(0), ..., fn(n-1); barrier() blocks until all of them ran."""

    def for_each(self, n: int, fn: Callable[[int], None]) -> None:
        raise NotImplementedError

    def barrier(self) -> None:
        raise NotImplementedError

    def run(self, n: int, fn: Callable[[int], None]) -> None:
        self.for_each(n, fn)
        self.barrier()

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class SequentialRunner(ParallelRunner):
    def for_each(self, n, fn):
        for i in range(n):
            try:
                fn(i)
            except Exception as e:
                raise AcceleratorFailure(f"work item {i}/{n} failed: {e!r}") from e

    def barrier(self):
        pass


class ThreadedRunner(ParallelRunner):
    def __init__(self, workers: int = 4):
        self.workers = max(1, int(workers))
        self._pool = ThreadPoolExecutor(max_workers=self.workers)
        self._pending = []

    def for_each(self, n, fn):
        self._pending.extend((i, self._pool.submit(fn, i)) for i in range(n))

    def barrier(self):
        pending, self._pending = self._pending, []
        failure = None
        # drain everything before raising so no item is still writing afterwards
        for i, fut in pending:
            try:
                fut.result()
            except Exception as e:
                if failure is None:
                    failure = (i, e)
        if failure is not None:
            i, e = failure
            raise AcceleratorFailure(f"work item {i} failed: {e!r}") from e

    def close(self):
        self._pool.shutdown(wait=True)


def make_runner(workers: int = 0) -> ParallelRunner:
    """0 or 1 worker runs inline; more uses a thread pool."""
    if workers is None or int(workers) <= 1:
        return SequentialRunner()
    return ThreadedRunner(int(workers))
