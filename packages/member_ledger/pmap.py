"""Order-preserving bounded parallel map over account partitions.

Account partitions share no mutable state, so the engine may hand them to a
thread pool. ``p_map`` keeps at most ``concurrency`` mapper calls in flight,
pulls input lazily, and returns results in input order so that downstream
writes and summaries do not depend on scheduling.

``concurrency=1`` runs the mapper inline on the calling thread.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
    thread_name_prefix: str = "ledger-account",
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with at most ``concurrency`` calls
    running at once.

    The first mapper exception is re-raised as-is after cancelling work that
    has not started yet. Mappers that want failure isolation must catch their
    own errors and return them as values.
    """

    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    if concurrency == 1:
        return [mapper(item) for item in iterable]

    it = enumerate(iterable)
    results: dict[int, OutT] = {}
    future_to_idx: dict[Future, int] = {}

    def _submit(pool: ThreadPoolExecutor) -> Future | None:
        try:
            idx, item = next(it)
        except StopIteration:
            return None
        fut = pool.submit(mapper, item)
        future_to_idx[fut] = idx
        return fut

    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix=thread_name_prefix) as pool:
        active: set[Future] = set()
        for _ in range(concurrency):
            fut = _submit(pool)
            if fut is None:
                break
            active.add(fut)

        while active:
            done, active = wait(active, return_when=FIRST_COMPLETED)
            for fut in done:
                idx = future_to_idx.pop(fut)
                try:
                    results[idx] = fut.result()
                except Exception:
                    pool.shutdown(wait=False, cancel_futures=True)
                    raise
            # Top up the window by one task per completion.
            for _ in range(len(done)):
                fut = _submit(pool)
                if fut is None:
                    break
                active.add(fut)

    return [results[i] for i in range(len(results))]


__all__ = ["p_map"]
