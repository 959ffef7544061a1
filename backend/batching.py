import asyncio
from typing import Any, Awaitable, Callable, List, Sequence, TypeVar

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 10


async def process_in_batches(
    items: Sequence[T],
    batch_size: int,
    func: Callable[[T], Awaitable[Any]],
) -> List[Any]:
    """Apply ``func`` to every item, ``batch_size`` items at a time.

    All items of a batch run concurrently and the batch is awaited in full
    before the next one starts. Results are returned in item order. If an
    item of a batch fails, the first failure (in item order) is raised and
    the remaining batches never start.
    """
    if batch_size <= 0:
        batch_size = DEFAULT_BATCH_SIZE

    results: List[Any] = [None] * len(items)

    for start in range(0, len(items), batch_size):
        batch = items[start:start + batch_size]
        outcomes = await asyncio.gather(*(func(item) for item in batch), return_exceptions=True)

        for offset, outcome in enumerate(outcomes):
            if isinstance(outcome, BaseException):
                raise outcome
            results[start + offset] = outcome

    return results
