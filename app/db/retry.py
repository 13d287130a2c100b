from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from app.core.errors import StorageError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def retry_transient_reads(
    attempts: int = 3, base_delay: float = 0.05
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry an idempotent read on transient ``StorageError``.

    Only for reads. Claims and booking transitions must never be wrapped.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except StorageError as exc:
                    if not exc.transient or attempt == attempts:
                        raise
                    delay = base_delay * 2 ** (attempt - 1)
                    logger.warning(
                        "Transient storage error in %s (attempt %d/%d), retrying in %.2fs: %s",
                        func.__qualname__,
                        attempt,
                        attempts,
                        delay,
                        exc,
                    )
                    await asyncio.sleep(delay)
            raise AssertionError("unreachable")

        return wrapper

    return decorator
