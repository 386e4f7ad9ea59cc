"""
Shared helpers for the pipeline stages.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def map_ordered(
    func: Callable[[T], R],
    items: Iterable[T],
    *,
    workers: int = 1,
    progress: Any = None,
) -> list[R]:
    """Apply ``func`` to every item, optionally on a thread pool, keeping input order.

    The first exception cancels work that has not started yet and is re-raised.
    ``progress`` is anything with an ``update(n)`` method (a tqdm bar).
    """
    items = list(items)

    if workers <= 1 or len(items) <= 1:
        results = []
        for item in items:
            results.append(func(item))
            if progress is not None:
                progress.update(1)
        return results

    ordered: list[Any] = [None] * len(items)
    with ThreadPoolExecutor(max_workers=min(workers, len(items))) as executor:
        futures = {executor.submit(func, item): index for index, item in enumerate(items)}
        try:
            for future in as_completed(futures):
                ordered[futures[future]] = future.result()
                if progress is not None:
                    progress.update(1)
        except BaseException:
            for future in futures:
                future.cancel()
            raise
    return ordered
