"""CAS-guarded read-modify-write shared by the auction and payment operations."""

import asyncio
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

from models.operations.errors import ConflictError, NotFoundError
from models.stores.base import StaleWriteError

E = TypeVar("E")


async def cas_retry(
    load: Callable[[str], Awaitable[Optional[E]]],
    save: Callable[[E], Awaitable[E]],
    key: str,
    mutator: Callable[..., bool],
    what: str,
    max_retries: int = 5,
) -> Tuple[E, bool]:
    """Read-modify-write a document with CAS-guarded retry.

    *mutator* receives the entity's data and mutates it in place. It returns
    ``True`` when something changed, ``False`` to leave the document alone,
    or raises an ``AuctionEngineError`` to abort. On a stale write the helper
    re-reads and retries with exponential backoff (10 ms, 20 ms, 40 ms, …);
    the mutator re-validates against the fresh copy every time.

    Returns ``(entity, changed)``.
    """
    backoff_ms = 10
    for attempt in range(max_retries + 1):
        entity = await load(key)
        if entity is None:
            raise NotFoundError(f"{what} not found")

        if not mutator(entity.data):
            return entity, False

        try:
            return await save(entity), True
        except StaleWriteError:
            if attempt == max_retries:
                break
            await asyncio.sleep(backoff_ms / 1000)
            backoff_ms *= 2

    raise ConflictError(f"Concurrent update conflict on {what.lower()} {key}, please retry")
