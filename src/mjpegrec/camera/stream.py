"""MJPEG-over-HTTP stream reader."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

import aiohttp

from mjpegrec.camera.base import SupervisedTask
from mjpegrec.camera.clock import Clock
from mjpegrec.camera.multipart import MultipartParser
from mjpegrec.camera.utils import _redact_url
from mjpegrec.errors import StreamError
from mjpegrec.models.config import StreamConfig
from mjpegrec.models.frame import Frame

logger = logging.getLogger(__name__)

# Errors that end one connection's read loop; the reader re-dials afterwards.
_READ_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError, ValueError)


class LineSource(Protocol):
    """Newline-delimited byte reader (aiohttp's `StreamReader` fits)."""

    async def readline(self) -> bytes: ...


class StreamConnector(Protocol):
    """Opens a camera URL and yields a line source for its body.

    Connection failures are raised as `StreamError`.
    """

    def open(self, url: str) -> AbstractAsyncContextManager[LineSource]: ...

    async def close(self) -> None: ...


class HttpStreamConnector:
    """aiohttp-backed connector sharing one session per camera."""

    def __init__(
        self,
        *,
        connect_timeout_s: float,
        read_timeout_s: float,
        read_bufsize: int,
    ) -> None:
        self._timeout = aiohttp.ClientTimeout(
            total=None,
            connect=connect_timeout_s,
            sock_read=read_timeout_s or None,
        )
        self._read_bufsize = read_bufsize
        self._session: aiohttp.ClientSession | None = None

    @classmethod
    def from_config(cls, config: StreamConfig) -> HttpStreamConnector:
        return cls(
            connect_timeout_s=config.connect_timeout_s,
            read_timeout_s=config.read_timeout_s,
            read_bufsize=config.read_bufsize,
        )

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                read_bufsize=self._read_bufsize,
            )
        return self._session

    @asynccontextmanager
    async def open(self, url: str) -> AsyncIterator[LineSource]:
        session = await self._ensure_session()
        try:
            response = await session.get(url)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise StreamError(f"http client: {exc}", cause=exc) from exc

        try:
            if response.status != 200:
                raise StreamError(f"http status {response.status} {response.reason}")
            yield response.content
        finally:
            response.release()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


class MjpegStreamReader(SupervisedTask):
    """Reads one camera's multipart stream and dispatches complete frames.

    Connection failures are retried after a fixed backoff, forever unless
    `max_attempts` bounds the number of consecutive failures. A read error or
    EOF drops the current connection (and any partial frame) and re-dials.
    Each frame is awaited through `on_frame` before the next line is read.
    """

    def __init__(
        self,
        *,
        camera_name: str,
        url: str,
        config: StreamConfig,
        on_frame: Callable[[Frame], Awaitable[None]],
        connector: StreamConnector | None = None,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(camera_name, clock=clock)
        self.url = url
        self._on_frame = on_frame
        self._backoff_s = float(config.reconnect_backoff_s)
        self._max_attempts = int(config.max_attempts)
        self._connector: StreamConnector = connector or HttpStreamConnector.from_config(config)
        self._parser = MultipartParser(camera_name=camera_name)
        self.frames_read = 0
        self.connections = 0
        self.failed_attempts = 0

    def _on_start(self) -> None:
        logger.info("Starting stream reader: %s", _redact_url(self.url), extra=self._extra())

    async def shutdown(self, timeout: float | None = None) -> None:
        # A blocked readline does not observe the stop event.
        task = self._task
        if task is not None and not task.done():
            self._stop_event.set()
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await super().shutdown(timeout)
        await self._connector.close()

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                async with self._connector.open(self.url) as lines:
                    self.connections += 1
                    self.failed_attempts = 0
                    logger.info("Connected to %s", _redact_url(self.url), extra=self._extra())
                    frames = await self._read_frames(lines)
            except StreamError as exc:
                self.failed_attempts += 1
                logger.warning(
                    "Stream connect failed (attempt %d): %s",
                    self.failed_attempts,
                    exc,
                    extra=self._extra(),
                )
                if self._max_attempts and self.failed_attempts >= self._max_attempts:
                    logger.error(
                        "Giving up after %d failed connection attempts",
                        self.failed_attempts,
                        extra=self._extra(),
                    )
                    return
                if await self._wait_or_stop(self._backoff_s):
                    return
                continue

            # A server that accepts and closes immediately would spin otherwise.
            if frames == 0 and await self._wait_or_stop(self._backoff_s):
                return

    async def _read_frames(self, lines: LineSource) -> int:
        """Read lines until EOF, error or stop. Returns frames dispatched."""
        self._parser.reset()
        frames = 0
        while not self._stop_event.is_set():
            try:
                line = await lines.readline()
            except _READ_ERRORS as exc:
                logger.warning("reader error: %s", exc or type(exc).__name__, extra=self._extra())
                return frames
            if not line:
                logger.warning("reader error: end of stream", extra=self._extra())
                return frames

            frame = self._parser.feed_line(line)
            if frame is None:
                continue

            frames += 1
            self.frames_read += 1
            self._touch_heartbeat()
            await self._dispatch(frame)
        return frames

    async def _dispatch(self, frame: Frame) -> None:
        try:
            await self._on_frame(frame)
        except Exception:
            logger.exception("Frame handler failed", extra=self._extra())
