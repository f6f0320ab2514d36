"""Encoder session lifecycle and segment rotation."""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from mjpegrec.camera.base import SupervisedTask
from mjpegrec.camera.clock import Clock
from mjpegrec.camera.encoder import Encoder, EncoderProcess
from mjpegrec.camera.frame_queue import FrameQueue
from mjpegrec.camera.utils import _next_backoff, _sanitize_name
from mjpegrec.errors import EncoderError
from mjpegrec.models.enums import SessionState
from mjpegrec.models.segment import Segment

logger = logging.getLogger(__name__)

_RESTART_BACKOFF_MIN_S = 0.5
_RESTART_BACKOFF_MAX_S = 10.0
_SEGMENT_TS_FORMAT = "%Y-%m-%d_%H-%M-%S"

# Reasons a running session ends.
_SHUTDOWN = "shutdown"
_EXITED = "encoder exited"
_WRITE_FAILED = "write failed"


@dataclass
class EncoderSession:
    process: EncoderProcess | None
    temp_path: Path
    stderr_log: Path
    started_wall: datetime
    started_mono: float
    frames_written: int = 0


class EncoderSessionManager(SupervisedTask):
    """Owns the encoder process for one camera.

    Runs the STARTING -> RUNNING -> STOPPING cycle until shutdown. Every
    session writes to the same temp path; a session is fully stopped and its
    file moved into `output_dir` before the next one is launched. Stop
    requests (rotation or external) collapse into a single pending flag that
    is cleared once the stop has been carried out.
    """

    def __init__(
        self,
        camera_name: str,
        *,
        queue: FrameQueue,
        encoder: Encoder,
        on_segment: Callable[[Segment], None],
        temp_dir: Path,
        output_dir: Path,
        extension: str,
        frame_interval_s: float,
        stop_timeout_s: float = 10.0,
        clock: Clock | None = None,
    ) -> None:
        super().__init__(camera_name, clock=clock)
        self._queue = queue
        self._encoder = encoder
        self._on_segment = on_segment
        self._temp_dir = Path(temp_dir)
        self._output_dir = Path(output_dir)
        self._extension = extension
        self._frame_interval_s = frame_interval_s
        self._encoder_stop_timeout_s = stop_timeout_s

        safe_name = _sanitize_name(camera_name)
        self._file_prefix = safe_name
        self.temp_path = self._temp_dir / f"{safe_name}-recording{extension}"
        self.stderr_log = self._temp_dir / f"{safe_name}-encoder.log"

        self._state = SessionState.STOPPED
        self._stop_requested = asyncio.Event()
        self._stop_reason: str | None = None
        self.stop_acknowledged = asyncio.Event()
        self.session_ready = asyncio.Event()
        self._session: EncoderSession | None = None

        self.sessions_started = 0
        self.segments_completed = 0
        self.frames_written = 0
        self.frames_dropped = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def stop_pending(self) -> bool:
        return self._stop_requested.is_set()

    @property
    def current_session(self) -> EncoderSession | None:
        return self._session

    def request_stop(self, reason: str = "external") -> bool:
        """Ask the running session to stop and the next one to start.

        Returns False when a stop is already pending; the request is merged
        into it.
        """
        if self._stop_requested.is_set():
            logger.info(
                "Stop already pending (%s), ignoring %s request",
                self._stop_reason,
                reason,
                extra=self._extra(),
            )
            return False
        self._stop_reason = reason
        self.stop_acknowledged.clear()
        self._stop_requested.set()
        logger.debug("Stop requested: %s", reason, extra=self._extra())
        return True

    def is_healthy(self) -> bool:
        if not self._task_is_healthy():
            return False
        if self._state != SessionState.RUNNING:
            return True
        session = self._session
        return session is not None and session.process is not None

    def _stop_timeout(self) -> float:
        return self._encoder_stop_timeout_s + 5.0

    def _on_start(self) -> None:
        self._temp_dir.mkdir(parents=True, exist_ok=True)
        self._output_dir.mkdir(parents=True, exist_ok=True)

    async def _run(self) -> None:
        backoff_s = _RESTART_BACKOFF_MIN_S
        try:
            while not self._stop_event.is_set():
                session = await self._start_session()
                reason = await self._run_session(session)
                await self._stop_session(session, reason)

                if reason in (_EXITED, _WRITE_FAILED):
                    logger.warning(
                        "Encoder session ended unexpectedly (%s), restarting in %.1fs",
                        reason,
                        backoff_s,
                        extra=self._extra(),
                    )
                    if await self._wait_or_stop(backoff_s):
                        break
                    if self._stop_requested.is_set():
                        # Nothing was running to stop.
                        self._acknowledge_stop()
                    backoff_s = _next_backoff(backoff_s, _RESTART_BACKOFF_MAX_S)
                else:
                    backoff_s = _RESTART_BACKOFF_MIN_S
        finally:
            self._state = SessionState.STOPPED
            self.session_ready.clear()

    async def _start_session(self) -> EncoderSession:
        self._state = SessionState.STARTING
        self._preserve_stale_output()
        started_wall = datetime.now()
        started_mono = self._clock.now()
        process = await self._encoder.start(self.temp_path, self.stderr_log)
        session = EncoderSession(
            process=process,
            temp_path=self.temp_path,
            stderr_log=self.stderr_log,
            started_wall=started_wall,
            started_mono=started_mono,
        )
        self._session = session
        self.sessions_started += 1
        if process is None:
            logger.error(
                "Encoder failed to start; dropping frames until the next rotation",
                extra=self._extra(),
            )
        else:
            self._touch_heartbeat()
            self.session_ready.set()
        self._state = SessionState.RUNNING
        return session

    async def _run_session(self, session: EncoderSession) -> str:
        """Feed queued frames to the encoder until something ends the session."""
        proc = session.process
        stop_wait = asyncio.ensure_future(self._stop_requested.wait())
        shutdown_wait = asyncio.ensure_future(self._stop_event.wait())
        exit_wait = asyncio.ensure_future(proc.wait()) if proc is not None else None
        frame_wait: asyncio.Future[bytes] | None = None
        tick_wait: asyncio.Future[None] | None = None
        next_write_at = self._clock.now()

        try:
            while True:
                if self._stop_event.is_set():
                    return _SHUTDOWN
                if self._stop_requested.is_set():
                    return self._stop_reason or "external"
                if exit_wait is not None and exit_wait.done():
                    logger.warning(
                        "Encoder exited unexpectedly (exit code: %s)",
                        proc.returncode if proc is not None else None,
                        extra=self._extra(),
                    )
                    return _EXITED

                if frame_wait is None and tick_wait is None:
                    delay = next_write_at - self._clock.now()
                    if delay > 0:
                        tick_wait = asyncio.ensure_future(self._clock.sleep(delay))
                    else:
                        frame_wait = asyncio.ensure_future(self._queue.get())

                waiters: set[asyncio.Future[object]] = {stop_wait, shutdown_wait}
                if exit_wait is not None:
                    waiters.add(exit_wait)
                if frame_wait is not None:
                    waiters.add(frame_wait)
                if tick_wait is not None:
                    waiters.add(tick_wait)
                await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

                if tick_wait is not None and tick_wait.done():
                    tick_wait = None
                if frame_wait is None or not frame_wait.done():
                    continue

                data = frame_wait.result()
                frame_wait = None
                if proc is None:
                    self.frames_dropped += 1
                    continue
                if exit_wait is not None and exit_wait.done():
                    continue

                try:
                    await self._encoder.write(proc, data)
                except EncoderError as exc:
                    logger.error("Encoder write failed: %s", exc, extra=self._extra())
                    return _WRITE_FAILED
                session.frames_written += 1
                self.frames_written += 1
                self._touch_heartbeat()
                next_write_at = max(next_write_at + self._frame_interval_s, self._clock.now())
        finally:
            for waiter in (stop_wait, shutdown_wait, exit_wait, frame_wait, tick_wait):
                if waiter is not None and not waiter.done():
                    waiter.cancel()

    async def _stop_session(self, session: EncoderSession, reason: str) -> None:
        self._state = SessionState.STOPPING
        self.session_ready.clear()
        logger.info("Stopping encoder session: %s", reason, extra=self._extra())

        if session.process is not None:
            try:
                await self._encoder.stop(session.process)
            except Exception:
                logger.exception("Failed while stopping encoder", extra=self._extra())

        discarded = self._queue.clear()
        if discarded:
            self.frames_dropped += discarded
            logger.debug("Discarded %d queued frames", discarded, extra=self._extra())

        segment = self._finalize(session)
        if segment is not None:
            self.segments_completed += 1
            self._emit(segment)

        self._session = None
        self._acknowledge_stop()

    def _acknowledge_stop(self) -> None:
        self._stop_reason = None
        self._stop_requested.clear()
        self.stop_acknowledged.set()

    def _finalize(self, session: EncoderSession) -> Segment | None:
        """Move the finished temp file into the output directory."""
        temp_path = session.temp_path
        try:
            size = temp_path.stat().st_size
        except FileNotFoundError:
            logger.warning("Encoder produced no output file: %s", temp_path, extra=self._extra())
            return None
        if size == 0:
            logger.warning("Encoder output is empty, discarding: %s", temp_path, extra=self._extra())
            temp_path.unlink(missing_ok=True)
            return None

        dest = self._segment_destination(session.started_wall)
        try:
            shutil.move(str(temp_path), str(dest))
        except OSError:
            logger.exception("Failed to move %s to %s", temp_path, dest, extra=self._extra())
            return None

        end_ts = datetime.now()
        segment = Segment(
            segment_id=dest.stem,
            camera_name=self.camera_name,
            local_path=dest,
            start_ts=session.started_wall,
            end_ts=end_ts,
            duration_s=max(0.0, self._clock.now() - session.started_mono),
            frames_written=session.frames_written,
        )
        logger.info(
            "Segment finished: %s (%d frames, %d bytes)",
            dest.name,
            session.frames_written,
            size,
            extra=self._extra(segment_id=segment.segment_id),
        )
        return segment

    def _segment_destination(self, started: datetime) -> Path:
        stem = f"{self._file_prefix}-{started.strftime(_SEGMENT_TS_FORMAT)}"
        return self._unique_path(self._output_dir, stem)

    def _unique_path(self, directory: Path, stem: str) -> Path:
        dest = directory / f"{stem}{self._extension}"
        suffix = 1
        while dest.exists():
            dest = directory / f"{stem}-{suffix}{self._extension}"
            suffix += 1
        return dest

    def _preserve_stale_output(self) -> None:
        """Move a leftover temp file aside before the encoder overwrites it.

        A non-empty leftover is a segment that was never finalized (e.g. the
        move into `output_dir` failed), so it is kept next to the temp file.
        """
        try:
            size = self.temp_path.stat().st_size
        except FileNotFoundError:
            return
        if size == 0:
            self.temp_path.unlink(missing_ok=True)
            return

        stamp = datetime.now().strftime(_SEGMENT_TS_FORMAT)
        dest = self._unique_path(self._temp_dir, f"{self._file_prefix}-orphaned-{stamp}")
        try:
            self.temp_path.rename(dest)
        except OSError:
            logger.exception(
                "Failed to keep unfinalized encoder output %s, it will be overwritten",
                self.temp_path,
                extra=self._extra(),
            )
            return
        logger.error(
            "Unfinalized segment moved aside: %s (%d bytes)", dest, size, extra=self._extra()
        )

    def _emit(self, segment: Segment) -> None:
        try:
            self._on_segment(segment)
        except Exception:
            logger.exception(
                "Segment handler failed", extra=self._extra(segment_id=segment.segment_id)
            )


class RotationTimer(SupervisedTask):
    """Requests an encoder stop every `duration_s` seconds."""

    def __init__(
        self,
        camera_name: str,
        *,
        duration_s: float,
        on_rotate: Callable[[str], bool],
        clock: Clock | None = None,
    ) -> None:
        super().__init__(camera_name, clock=clock)
        self._duration_s = duration_s
        self._on_rotate = on_rotate
        self.rotations = 0

    def _stop_timeout(self) -> float:
        return 1.0

    async def _run(self) -> None:
        while not await self._wait_or_stop(self._duration_s):
            self.rotations += 1
            self._touch_heartbeat()
            logger.debug("Rotating segment", extra=self._extra())
            self._on_rotate("rotation")
