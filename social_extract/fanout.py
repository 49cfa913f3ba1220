from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

OnErrorFn = Callable[[int, T, BaseException], None]


async def bounded_gather(
    items: Sequence[T],
    fn: Callable[[T], Awaitable[R | None]],
    *,
    limit: int,
    on_error: OnErrorFn | None = None,
) -> list[R | None]:
    """
    Run fn over items with at most `limit` in flight and return results in input order.

    A unit that raises yields None in its slot; on_error receives (index, item, exc).
    Cancellation is not swallowed.
    """
    if limit <= 0:
        raise ValueError("limit must be positive")
    if not items:
        return []

    sem = asyncio.Semaphore(limit)

    async def _run(idx: int, item: T) -> R | None:
        async with sem:
            try:
                return await fn(item)
            except Exception as exc:
                if on_error is not None:
                    on_error(idx, item, exc)
                return None

    return list(await asyncio.gather(*(_run(i, item) for i, item in enumerate(items))))
