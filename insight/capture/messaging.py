"""Fire-and-forget notifications between the capture and consumer contexts."""
from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Any, Dict, List, Set

logger = logging.getLogger(__name__)

CAPTURE_READY = "capture.ready"

MessageHandler = Callable[[Dict[str, Any]], Awaitable[None] | None]


class MessageBus:
    """In-process topic bus.

    ``publish`` never waits for a handler and never fails because nobody
    is listening; the durable store remains the source of truth.
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[MessageHandler]] = defaultdict(list)
        self._tasks: Set[asyncio.Task[None]] = set()

    def subscribe(self, topic: str, handler: MessageHandler) -> Callable[[], None]:
        self._handlers[topic].append(handler)

        def _unsubscribe() -> None:
            handlers = self._handlers.get(topic, [])
            if handler in handlers:
                handlers.remove(handler)

        return _unsubscribe

    def publish(self, topic: str, payload: Dict[str, Any] | None = None) -> int:
        """Schedule every handler for ``topic`` and return how many were notified."""

        handlers = list(self._handlers.get(topic, []))
        if not handlers:
            logger.debug("No listener for notification", extra={"topic": topic})
            return 0

        message = dict(payload or {})
        for handler in handlers:
            task = asyncio.get_running_loop().create_task(self._deliver(topic, handler, message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return len(handlers)

    async def drain(self) -> None:
        """Wait for every delivery scheduled so far."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def _deliver(self, topic: str, handler: MessageHandler, message: Dict[str, Any]) -> None:
        try:
            maybe_awaitable = handler(message)
            if asyncio.iscoroutine(maybe_awaitable):
                await maybe_awaitable
        except Exception:
            logger.exception("Notification handler raised", extra={"topic": topic})
