"""Bounded event buffer between the engine and a stream consumer."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Iterable

from ..telemetry.graph_tracing import record_stream_event_dropped
from .graph_events import GraphEvent, GraphStreamMode, event_types_for
from .run_config import StreamConfig

logger = logging.getLogger("adk_graph." + __name__)

_CLOSED = object()


class EventStream:
    """Single-producer, single-consumer event buffer.

    Non-terminal events are offered without blocking and dropped when the
    buffer is full (unless ``drop_when_full`` is off, in which case the
    engine waits). Terminal events always wait for room, so a consumer never
    misses the outcome of a run.
    """

    def __init__(
        self,
        modes: Iterable[GraphStreamMode],
        config: StreamConfig,
        thread_id: str = "",
    ) -> None:
        self.config = config
        self.thread_id = thread_id
        self.dropped = 0
        self._event_types = event_types_for(list(modes))
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=config.max_buffer_size)
        self._closed = False

    def accepts(self, event: GraphEvent) -> bool:
        return event.event_type in self._event_types

    async def emit(self, event: GraphEvent) -> None:
        if self._closed or not self.accepts(event):
            return
        if event.is_terminal or not self.config.drop_when_full:
            await self._queue.put(event)
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Stream buffer full, dropping %s event",
                event.event_type.value,
                extra={"thread_id": self.thread_id, "dropped": self.dropped},
            )
            record_stream_event_dropped(event.event_type.value)

    def close(self) -> None:
        """Mark the producer side finished. Never blocks."""
        self._closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # Consumer drains the remaining events and sees the closed flag.
            pass

    async def __aiter__(self) -> AsyncIterator[GraphEvent]:
        while True:
            if self._closed and self._queue.empty():
                return
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
