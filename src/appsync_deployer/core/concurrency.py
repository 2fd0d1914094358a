"""
Fire-and-wait-all execution for item-level mutations of one resource kind.

All submitted calls run to completion; if any failed, the first failure (in
input order) is re-raised after the others have finished.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def run_all(fn: Callable[[T], R], items: Iterable[T], *, max_workers: int = 4) -> List[R]:
    """Apply ``fn`` to every item concurrently and return results in input order."""
    items = list(items)
    if not items:
        return []
    if max_workers <= 1 or len(items) == 1:
        return [fn(it) for it in items]

    with ThreadPoolExecutor(max_workers=min(max_workers, len(items))) as pool:
        futures = [pool.submit(fn, it) for it in items]
    # executor exit waited for every future
    errors = [f.exception() for f in futures]
    for err in errors:
        if err is not None:
            raise err
    return [f.result() for f in futures]
