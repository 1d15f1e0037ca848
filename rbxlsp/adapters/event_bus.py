"""Async event bus bridging a session's transport to its relay.

The transport reader fires notifications synchronously, in arrival
order. The EventBus queues them for the relay's consumer loop.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from rbxlsp.adapters.events import SessionEvent

logger = logging.getLogger(__name__)


class EventBus:
    """Ordered async queue of inbound session events."""

    def __init__(self, maxsize: int = 5000) -> None:
        self._queue: asyncio.Queue[SessionEvent | None] = asyncio.Queue(
            maxsize=maxsize
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def qsize(self) -> int:
        return self._queue.qsize()

    def publish(self, event: SessionEvent) -> None:
        """Enqueue without suspending so arrival order is kept."""
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error(
                "EventBus queue full, dropping: %s (queue size: %d)",
                event.event_type,
                self._queue.qsize(),
            )

    async def consume(self) -> AsyncIterator[SessionEvent]:
        """Yield events as they arrive. Stops after close() once drained."""
        while True:
            event = await self._queue.get()
            if event is None:
                break
            yield event

    def close(self) -> None:
        """Stop the consumer loop after already queued events are delivered."""
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # Make room for the sentinel; the oldest event is lost.
            self._queue.get_nowait()
            self._queue.put_nowait(None)
