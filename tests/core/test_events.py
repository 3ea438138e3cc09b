import asyncio
from unittest.mock import AsyncMock

import pytest

from authflow.core.events import SIGNIN, EventDispatcher
from authflow.utils.hooks import call_hook, with_timeout


@pytest.mark.asyncio
async def test_dispatch_calls_sync_and_async_handlers():
    dispatcher = EventDispatcher()
    seen = []
    async_handler = AsyncMock()

    dispatcher.on(SIGNIN, seen.append)
    dispatcher.on(SIGNIN, async_handler)

    await dispatcher.dispatch(SIGNIN, {"user": "u1"})
    await dispatcher.drain()

    assert seen == [{"user": "u1"}]
    async_handler.assert_awaited_once_with({"user": "u1"})


@pytest.mark.asyncio
async def test_failing_handler_does_not_stop_others():
    dispatcher = EventDispatcher()
    later = AsyncMock()

    def broken(payload):
        raise RuntimeError("boom")

    dispatcher.on(SIGNIN, broken)
    dispatcher.on(SIGNIN, later)

    await dispatcher.dispatch(SIGNIN, {})
    await dispatcher.drain()

    later.assert_awaited_once()


@pytest.mark.asyncio
async def test_slow_handler_times_out():
    dispatcher = EventDispatcher(timeout=0.01)

    async def slow(payload):
        await asyncio.sleep(10)

    dispatcher.on(SIGNIN, slow)

    await dispatcher.dispatch(SIGNIN, {})
    await dispatcher.drain()


@pytest.mark.asyncio
async def test_dispatch_without_handlers():
    await EventDispatcher().dispatch("unknown", {})


@pytest.mark.asyncio
async def test_call_hook_accepts_sync_and_async():
    async def double(x):
        return x * 2

    assert await call_hook(lambda x: x + 1, 1) == 2
    assert await call_hook(double, 2, timeout=1) == 4


@pytest.mark.asyncio
async def test_with_timeout_raises():
    with pytest.raises(asyncio.TimeoutError):
        await with_timeout(asyncio.sleep(10), 0.01)


@pytest.mark.asyncio
async def test_dispatch_returns_before_handlers_finish():
    dispatcher = EventDispatcher(timeout=1.0)
    release = asyncio.Event()
    done = []

    async def waiting(payload):
        await release.wait()
        done.append(payload)

    dispatcher.on(SIGNIN, waiting)

    await dispatcher.dispatch(SIGNIN, {"user": "u1"})
    assert done == []

    release.set()
    await dispatcher.drain()
    assert done == [{"user": "u1"}]
