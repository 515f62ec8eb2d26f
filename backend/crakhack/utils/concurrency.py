from __future__ import annotations
"""
Fan-out / fan-in helper for independent outbound requests.
"""

from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Callable, List, TypeVar

T = TypeVar("T")


def run_all_or_nothing(tasks: List[Callable[[], T]], max_workers: int = 8) -> List[T]:
    """
    Run every task on a thread pool and return results in task order.

    All-or-nothing join: as soon as one task raises, tasks that have not
    started yet are cancelled and that exception propagates. Tasks already
    in flight are left to finish in the background; their results are dropped.
    """
    if not tasks:
        return []

    executor = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(tasks))))
    try:
        futures = [executor.submit(task) for task in tasks]
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)

        failed = [f for f in futures if f in done and f.exception() is not None]
        if failed:
            for future in pending:
                future.cancel()
            raise failed[0].exception()

        return [future.result() for future in futures]
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
