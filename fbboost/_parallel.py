"""Executor fan-out for independent embedding tasks."""
from __future__ import annotations

from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, TypeVar

from tqdm.auto import tqdm

_T = TypeVar("_T")
_R = TypeVar("_R")

_EXECUTORS = {"thread": ThreadPoolExecutor, "process": ProcessPoolExecutor}


def run_parallel(
    func: Callable[[_T], _R],
    tasks: Sequence[_T],
    desc: str,
    workers: Optional[int] = None,
    executor: str = "thread",
    progress: bool = False,
) -> List[_R]:
    """Apply `func` to every task and return results in task order.

    With ``workers == 1`` the tasks run in the calling thread. The first task
    exception propagates after the pool shuts down.
    """
    if len(tasks) == 0:
        return []

    if workers == 1 or len(tasks) == 1:
        return [func(task) for task in tqdm(tasks, desc=desc, leave=False, disable=not progress)]

    pool_cls = _EXECUTORS[executor]
    pool: Executor
    with pool_cls(max_workers=workers) as pool:
        futures = [pool.submit(func, task) for task in tasks]
        results = []
        for f in tqdm(futures, desc=desc, leave=False, disable=not progress):
            results.append(f.result())
        return results
