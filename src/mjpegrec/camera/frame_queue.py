from __future__ import annotations

import asyncio
import logging

from mjpegrec.logging_setup import camera_extra

logger = logging.getLogger(__name__)


class FrameQueue:
    """Bounded hand-off from the frame filter to the encoder loop.

    `offer()` never blocks: when the queue is full the oldest queued frame
    is dropped to make room for the newest one.
    """

    def __init__(self, maxsize: int, *, camera_name: str = "-") -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self._queue: asyncio.Queue[bytes] = asyncio.Queue(maxsize=maxsize)
        self._camera_name = camera_name
        self.dropped = 0

    @property
    def maxsize(self) -> int:
        return self._queue.maxsize

    def qsize(self) -> int:
        return self._queue.qsize()

    def offer(self, frame: bytes) -> bool:
        """Enqueue a frame. Returns False if an older frame was dropped for it."""
        try:
            self._queue.put_nowait(frame)
            return True
        except asyncio.QueueFull:
            pass

        try:
            self._queue.get_nowait()
        except asyncio.QueueEmpty:
            pass
        self.dropped += 1
        if self.dropped == 1 or self.dropped % 100 == 0:
            logger.warning(
                "Frame queue full (%d), dropped %d frames so far",
                self._queue.maxsize,
                self.dropped,
                extra=camera_extra(self._camera_name),
            )
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            pass
        return False

    async def get(self) -> bytes:
        return await self._queue.get()

    def get_nowait(self) -> bytes | None:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def clear(self) -> int:
        """Discard every queued frame. Returns how many were discarded."""
        discarded = 0
        while self.get_nowait() is not None:
            discarded += 1
        return discarded
