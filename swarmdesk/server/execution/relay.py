"""Per-execution event relay.

The runner publishes into an :class:`EventRelay`; the SSE response drains
it.  The two sides are decoupled: if the client disconnects the relay is
closed and further publishes are dropped, while the process keeps running
and its outcome is still persisted.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from swarmdesk.server.models.events import SwarmEvent


class EventRelay:
    """Unbounded FIFO of :class:`SwarmEvent` for a single consumer."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[SwarmEvent] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def publish(self, event: SwarmEvent) -> None:
        if self._closed:
            return
        self._queue.put_nowait(event)

    def close(self) -> None:
        self._closed = True

    async def events(self) -> AsyncIterator[SwarmEvent]:
        """Yield events in publish order; stops after the first terminal one."""
        try:
            while True:
                event = await self._queue.get()
                yield event
                if event.is_terminal:
                    return
        finally:
            self.close()

    async def sse_frames(self) -> AsyncIterator[dict[str, str]]:
        """Events shaped for ``sse_starlette.EventSourceResponse``: one ``data:`` line each."""
        try:
            async for event in self.events():
                yield {"data": event.model_dump_json(by_alias=True, exclude_none=True)}
        finally:
            # A disconnecting client closes this generator, not the inner one.
            self.close()
