"""Racing upstream calls against a session stop signal."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable
from typing import Optional, TypeVar

from ..exceptions import CancellationError

T = TypeVar("T")


async def guard(call: Awaitable[T], stop: Optional[asyncio.Event], what: str = "call") -> T:
    """
    Await ``call`` unless ``stop`` fires first.

    When the stop signal wins, the call is cancelled and awaited before
    CancellationError is raised, so nothing is left running. Task
    cancellation of the caller cancels the call the same way.

    Args:
        call: Coroutine or future performing the upstream request
        stop: Session stop signal, or None to await plainly
        what: Label used in the cancellation message

    Raises:
        CancellationError: If ``stop`` is set before the call completes
    """
    if stop is None:
        return await call

    if stop.is_set():
        if inspect.iscoroutine(call):
            call.close()
        raise CancellationError(f"{what}: cancelled")

    task = asyncio.ensure_future(call)
    waiter = asyncio.ensure_future(stop.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        waiter.cancel()
        if not task.done():
            task.cancel()
        await asyncio.gather(task, waiter, return_exceptions=True)

    if task.cancelled():
        raise CancellationError(f"{what}: cancelled")
    return task.result()
