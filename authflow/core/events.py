"""
Sign-in event dispatch.

Handlers are fire-and-forget from the caller's point of view: a failing or slow handler
is logged and never propagates.
"""

import asyncio
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Set

from loguru import logger

from authflow.utils.hooks import call_hook

LOG_PREFIX = "[Events]"

SIGNIN = "signin"
CREATE_USER = "create_user"
LINK_ACCOUNT = "link_account"

EventHandler = Callable[[Dict[str, Any]], Any]


class EventDispatcher:
    """Named event handlers."""

    def __init__(self, timeout: Optional[float] = 5.0):
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self.timeout = timeout
        self._tasks: Set[asyncio.Task] = set()

    def on(self, name: str, handler: EventHandler) -> EventHandler:
        """Register a handler for `name`."""
        self._handlers[name].append(handler)
        return handler

    def handlers(self, name: str) -> List[EventHandler]:
        return list(self._handlers.get(name, []))

    async def dispatch(self, name: str, payload: Dict[str, Any]) -> None:
        """Schedule every handler of `name` in the background and return immediately."""
        for handler in self.handlers(name):
            task = asyncio.create_task(self._run(name, handler, payload))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for handlers still running (shutdown, tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, name: str, handler: EventHandler, payload: Dict[str, Any]) -> None:
        try:
            await call_hook(handler, payload, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{LOG_PREFIX} Handler {handler!r} for '{name}' timed out")
        except Exception as e:
            logger.opt(exception=e).warning(f"{LOG_PREFIX} Handler {handler!r} for '{name}' failed: {e}")
