"""
Helpers for calling user-supplied hooks and collaborators.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], timeout: Optional[float]) -> T:
    """Await with an optional timeout (raises asyncio.TimeoutError)."""
    if timeout is None:
        return await awaitable
    return await asyncio.wait_for(awaitable, timeout)


async def call_hook(hook: Callable[..., Any], *args: Any, timeout: Optional[float] = None) -> Any:
    """Call a sync or async hook; async results are awaited within `timeout`."""
    result = hook(*args)
    if inspect.isawaitable(result):
        return await with_timeout(result, timeout)
    return result
