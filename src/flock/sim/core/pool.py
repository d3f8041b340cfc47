from __future__ import annotations

import math
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, List, TypeVar

from loguru import logger

T = TypeVar("T")


class ExecutorKind(str, Enum):
    THREAD = "thread"
    PROCESS = "process"


def parse_executor_kind(value: str | ExecutorKind) -> ExecutorKind:
    if isinstance(value, ExecutorKind):
        return value
    try:
        return ExecutorKind(str(value).strip().lower())
    except ValueError:
        choices = ", ".join(kind.value for kind in ExecutorKind)
        raise ValueError(f"Unknown executor: {value!r} (expected one of {choices})") from None


class TickPool:
    """
    Fixed-size worker pool shared by every tick of a simulation.

    The executor is created once and reused, never per tick. Work is split into
    contiguous index chunks; results come back in chunk order whatever order
    the workers finish in. With ``workers <= 1`` chunks run inline on the
    calling thread.

    Threads are the default. The process executor sidesteps the GIL for
    pure-Python rules; its chunk function and extra arguments must be
    picklable, and since those arguments travel with every task the index
    range is cut into at most one chunk per worker.
    """

    def __init__(
        self,
        workers: int = 10,
        chunk_size: int = 256,
        executor: str | ExecutorKind = ExecutorKind.THREAD,
    ) -> None:
        if workers < 0:
            raise ValueError(f"workers must be non-negative, got {workers}")
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be at least 1, got {chunk_size}")
        self._workers = workers
        self._chunk_size = chunk_size
        self._kind = parse_executor_kind(executor)
        self._executor: Executor | None = None
        if workers > 1:
            if self._kind is ExecutorKind.PROCESS:
                self._executor = ProcessPoolExecutor(max_workers=workers)
            else:
                self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="flock-tick")
        self._closed = False
        logger.debug("tick pool ready: workers={} chunk_size={} executor={}", workers, chunk_size, self._kind.value)

    @property
    def workers(self) -> int:
        return self._workers

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def kind(self) -> ExecutorKind:
        return self._kind

    @property
    def parallel(self) -> bool:
        return self._executor is not None

    @property
    def shares_memory(self) -> bool:
        """False when chunks run in other processes and only see pickled copies."""
        return not (self.parallel and self._kind is ExecutorKind.PROCESS)

    @property
    def closed(self) -> bool:
        return self._closed

    def chunks(self, size: int) -> List[range]:
        step = self._chunk_size
        if not self.shares_memory:
            step = max(step, math.ceil(size / self._workers))
        return [range(start, min(start + step, size)) for start in range(0, size, step)]

    def map_chunks(self, fn: Callable[..., T], size: int, *args: Any) -> List[T]:
        """Call ``fn(chunk, *args)`` for every chunk of ``range(size)``, results in chunk order."""

        if self._closed:
            raise RuntimeError("tick pool is closed")
        ranges = self.chunks(size)
        if self._executor is None:
            return [fn(chunk, *args) for chunk in ranges]
        futures = [self._executor.submit(fn, chunk, *args) for chunk in ranges]
        # Acts as the per-tick barrier: every chunk finishes before the tick commits.
        return [future.result() for future in futures]

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._executor is not None:
            self._executor.shutdown(wait=True, cancel_futures=True)

    def __enter__(self) -> "TickPool":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
