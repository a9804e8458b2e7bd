"""Manual "reconcile everything" triggers."""

from __future__ import annotations

import asyncio
import sys
import threading
from logging import getLogger
from typing import TYPE_CHECKING

from autosecret.config.controller import DEFAULT_RESYNC_QUEUE_SIZE

if TYPE_CHECKING:
    from typing import TextIO

log = getLogger(__name__)


class ResyncTrigger:
    """Bounded, lossy channel of resync requests.

    Offers never block. When the channel is full the press is dropped, which is
    harmless because a single pending resync already covers every object.
    """

    def __init__(self, maxsize: int = DEFAULT_RESYNC_QUEUE_SIZE) -> None:
        self._queue: asyncio.Queue[None] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def offer(self) -> bool:
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            self.dropped += 1
            log.debug("resync already pending, dropping trigger")
            return False
        return True

    async def wait(self) -> None:
        await self._queue.get()


class StdinResyncTrigger(ResyncTrigger):
    """Resync whenever a line arrives on stdin.

    Reads happen on a daemon thread: blocking stdin reads cannot be cancelled,
    and the thread must never hold up interpreter exit.
    """

    def __init__(
        self,
        maxsize: int = DEFAULT_RESYNC_QUEUE_SIZE,
        *,
        stream: TextIO | None = None,
    ) -> None:
        super().__init__(maxsize)
        self._stream = stream
        self._thread: threading.Thread | None = None

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._pump,
            args=(loop,),
            name="autosecret-stdin-resync",
            daemon=True,
        )
        self._thread.start()

    def _pump(self, loop: asyncio.AbstractEventLoop) -> None:
        stream = self._stream or sys.stdin
        for _line in stream:
            try:
                loop.call_soon_threadsafe(self.offer)
            except RuntimeError:
                # event loop already closed, nobody is listening any more
                return
