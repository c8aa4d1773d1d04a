"""
Event channel between the pipeline coordinator and the streaming response.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Dict, List, Sequence

Event = Dict[str, Any]

_CLOSED = object()


class ChannelClosedError(RuntimeError):
    """Raised when sending on a closed channel."""


class EventChannel:
    """
    Unbounded append-only event queue with an explicit close.

    The producer calls ``send`` and finally ``close``; the consumer iterates
    with ``async for`` until the channel is closed. A consumer that stops
    early does not block the producer.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: Event) -> None:
        if self._closed:
            raise ChannelClosedError("event channel is closed")
        await self._queue.put(event)

    async def close(self) -> None:
        """Close the channel. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_CLOSED)

    def __aiter__(self) -> AsyncIterator[Event]:
        return self._iter()

    async def _iter(self) -> AsyncIterator[Event]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


class ListSink:
    """Collects events in memory; used by the retrieval-only path and tests."""

    def __init__(self) -> None:
        self.events: List[Event] = []
        self.closed = False

    async def send(self, event: Event) -> None:
        self.events.append(event)

    async def close(self) -> None:
        self.closed = True


def progress_event(message: str, **extra: Any) -> Event:
    return {"message": message, **extra}


def queries_event(message: str, queries: Sequence[str]) -> Event:
    return {"message": message, "queries": list(queries)}


def chunk_event(text: str) -> Event:
    return {"chunk": text}


def error_event(message: str) -> Event:
    return {"error": message}


def to_sse(event: Event) -> str:
    """Encode an event as one server-sent-events frame with a JSON data line."""
    data = json.dumps(event, ensure_ascii=False)
    return f"data: {data}\n\n"
