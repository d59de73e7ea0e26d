"""Async event bus feeding the single control-loop consumer.

Key presses, ticks and background completions are all queued here so
the controller sees exactly one event at a time, in arrival order.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from perch.adapters.events import ControlEvent

logger = logging.getLogger(__name__)


class EventBus:
    """Async queue bridging producers to the control-loop consumer."""

    def __init__(self, maxsize: int = 5000) -> None:
        self._queue: asyncio.Queue[ControlEvent] = asyncio.Queue(
            maxsize=maxsize
        )
        self._closed = False

    async def emit(self, event: ControlEvent) -> None:
        """Queue an event, waiting for space if the consumer is behind."""
        if self._closed:
            return
        try:
            await asyncio.wait_for(self._queue.put(event), timeout=30.0)
        except asyncio.TimeoutError:
            logger.error(
                "EventBus queue blocked for 30s, dropping: %s (queue size: %d)",
                event.event_type,
                self._queue.qsize(),
            )

    def post(self, event: ControlEvent) -> None:
        """Queue an event from synchronous code (key handlers, timers)."""
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

    async def consume(self) -> AsyncIterator[ControlEvent]:
        """Yield events as they arrive. Stops on close()."""
        while not self._closed:
            try:
                event = await asyncio.wait_for(
                    self._queue.get(), timeout=0.5
                )
                yield event
            except asyncio.TimeoutError:
                continue
            except asyncio.CancelledError:
                break

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        """Stop the consumer loop permanently."""
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed
