"""Thread-pool map used to fan categorization batches out to the model.

Results come back in input order and at most ``concurrency`` mapper calls run
at once. The first exception raised by a mapper propagates to the caller and
batches that have not started are cancelled, so mappers that must not lose
their siblings' results (see ``categorize._run_batch``) return a failure
value instead of raising.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


def p_map(
    items: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
) -> list[OutT]:
    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    work = list(items)
    if not work:
        return []

    with ThreadPoolExecutor(
        max_workers=min(concurrency, len(work)), thread_name_prefix="p_map"
    ) as pool:
        futures = [pool.submit(mapper, item) for item in work]
        try:
            return [fut.result() for fut in futures]
        except Exception:
            for fut in futures:
                fut.cancel()
            raise


__all__ = ["p_map"]
