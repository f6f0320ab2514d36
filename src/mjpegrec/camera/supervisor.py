from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from mjpegrec.camera.clock import Clock, SystemClock
from mjpegrec.camera.encoder import Encoder, SubprocessEncoder
from mjpegrec.camera.frame_filter import FrameFilter
from mjpegrec.camera.frame_queue import FrameQueue
from mjpegrec.camera.session import EncoderSessionManager, RotationTimer
from mjpegrec.camera.stream import MjpegStreamReader, StreamConnector
from mjpegrec.config.loader import resolve_camera_url
from mjpegrec.interfaces import Shutdownable
from mjpegrec.logging_setup import camera_extra
from mjpegrec.models.config import CameraConfig, Config
from mjpegrec.models.frame import Frame
from mjpegrec.models.segment import Segment

logger = logging.getLogger(__name__)


class CameraSupervisor(Shutdownable):
    """Wires and runs the recording pipeline for one camera.

    reader -> filter -> queue -> encoder session -> `on_segment`, plus a
    rotation timer. Nothing here is shared with other cameras.
    """

    def __init__(
        self,
        camera: CameraConfig,
        config: Config,
        *,
        on_segment: Callable[[Segment], None],
        clock: Clock | None = None,
        connector: StreamConnector | None = None,
        encoder: Encoder | None = None,
    ) -> None:
        self.camera_name = camera.name
        self._clock = clock or SystemClock()
        self._heartbeat_s = float(config.stream.heartbeat_s)
        self._stats_task: asyncio.Task[None] | None = None

        url = resolve_camera_url(camera)
        self.queue = FrameQueue(config.encoder.queue_size, camera_name=camera.name)
        self.filter = FrameFilter(camera_name=camera.name, config=config.filter, clock=self._clock)
        self.reader = MjpegStreamReader(
            camera_name=camera.name,
            url=url,
            config=config.stream,
            on_frame=self._handle_frame,
            connector=connector,
            clock=self._clock,
        )
        self.session = EncoderSessionManager(
            camera.name,
            queue=self.queue,
            encoder=encoder
            or SubprocessEncoder.from_config(
                config.encoder, camera_name=camera.name, clock=self._clock
            ),
            on_segment=on_segment,
            temp_dir=Path(config.paths.temp_dir),
            output_dir=Path(config.paths.output_dir),
            extension=config.encoder.extension,
            frame_interval_s=config.filter.frame_interval_s,
            stop_timeout_s=config.encoder.stop_timeout_s,
            clock=self._clock,
        )
        self.rotation = RotationTimer(
            camera.name,
            duration_s=config.rotation.duration_s,
            on_rotate=self.session.request_stop,
            clock=self._clock,
        )

    async def start(self) -> None:
        logger.info("Starting camera", extra=camera_extra(self.camera_name))
        await self.session.start()
        await self.reader.start()
        await self.rotation.start()
        if self._heartbeat_s > 0:
            self._stats_task = asyncio.create_task(
                self._log_stats_loop(), name=f"stats:{self.camera_name}"
            )

    async def shutdown(self, timeout: float | None = None) -> None:
        logger.info("Stopping camera", extra=camera_extra(self.camera_name))
        if self._stats_task is not None:
            self._stats_task.cancel()
            try:
                await self._stats_task
            except asyncio.CancelledError:
                pass
            self._stats_task = None
        await self.rotation.shutdown()
        await self.reader.shutdown()
        # Last: finalizes the segment in progress and hands it to the sink.
        await self.session.shutdown(timeout)
        self.log_stats()

    def request_stop(self, reason: str = "external") -> bool:
        """Stop the current segment now; recording continues in a new one."""
        return self.session.request_stop(reason)

    def is_healthy(self) -> bool:
        return (
            self.reader.is_healthy() and self.session.is_healthy() and self.rotation.is_healthy()
        )

    def last_heartbeat(self) -> float:
        return self.reader.last_heartbeat()

    async def _handle_frame(self, frame: Frame) -> None:
        # Decode, diff and encode run off the loop shared by every camera.
        encoded = await asyncio.to_thread(self.filter.process, frame)
        if encoded is not None:
            self.queue.offer(encoded)

    def log_stats(self) -> None:
        stats = self.filter.stats
        logger.info(
            "frames read=%d accepted=%d written=%d segments=%d",
            self.reader.frames_read,
            stats.accepted,
            self.session.frames_written,
            self.session.segments_completed,
            extra=camera_extra(
                self.camera_name,
                dropped_decode=stats.dropped_decode,
                dropped_rate=stats.dropped_rate,
                dropped_similar=stats.dropped_similar,
                dropped_queue=self.queue.dropped,
                healthy=self.is_healthy(),
            ),
        )

    async def _log_stats_loop(self) -> None:
        while True:
            await self._clock.sleep(self._heartbeat_s)
            self.log_stats()
