"""
Parallel execution helpers.

Gene sets are scored independently against read-only ranking tables, so the
work fans out over chunks of gene sets and the partial results are merged by
the caller.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterator, List, Optional, Sequence, TypeVar

from tqdm import tqdm

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def chunked(items: Sequence[T], chunk_size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of ``items`` with at most ``chunk_size`` elements."""
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
    for start in range(0, len(items), chunk_size):
        yield items[start:start + chunk_size]


def parallel_map(
    func: Callable[[T], R],
    items: Sequence[T],
    n_workers: Optional[int] = None,
    desc: str = "Processing",
    show_progress: bool = False,
) -> List[R]:
    """
    Apply ``func`` to every item, in a thread pool when worthwhile.

    Results keep the order of ``items``. Exceptions raised by ``func``
    propagate to the caller.

    Args:
        func: Function of one item; must not mutate shared state
        items: Work items
        n_workers: Number of worker threads (None = CPU count)
        desc: Progress bar label
        show_progress: Display a tqdm progress bar

    Returns:
        List of results in input order
    """
    if n_workers is None:
        n_workers = min(os.cpu_count() or 4, max(len(items), 1))

    progress = tqdm(total=len(items), desc=desc, disable=not show_progress)
    try:
        # For small numbers of items, just use sequential processing
        if n_workers <= 1 or len(items) <= 1:
            results = []
            for item in items:
                results.append(func(item))
                progress.update(1)
            return results

        with ThreadPoolExecutor(max_workers=n_workers) as executor:
            results = []
            for result in executor.map(func, items):
                results.append(result)
                progress.update(1)
        logger.debug(f"{desc}: {len(items)} items on {n_workers} workers")
        return results
    finally:
        progress.close()
