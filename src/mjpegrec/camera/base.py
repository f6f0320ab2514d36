"""Shared lifecycle for the per-camera async tasks."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from mjpegrec.camera.clock import Clock, SystemClock
from mjpegrec.interfaces import Shutdownable
from mjpegrec.logging_setup import camera_extra

logger = logging.getLogger(__name__)


class SupervisedTask(Shutdownable, ABC):
    """Base class for camera components that run as one async task.

    Each task owns a stop event; `shutdown()` sets it and waits for the task
    to return, cancelling it if it does not within `_stop_timeout()`.
    """

    def __init__(self, camera_name: str, *, clock: Clock | None = None) -> None:
        self.camera_name = camera_name
        self._clock = clock or SystemClock()
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()
        self._last_heartbeat = self._clock.now()
        self._started = False

    async def start(self) -> None:
        """Start the background task."""
        if self._task is not None:
            logger.warning(
                "%s already started", self.__class__.__name__, extra=self._extra()
            )
            return

        self._started = True
        self._stop_event.clear()
        self._on_start()
        self._task = asyncio.create_task(
            self._run_wrapper(), name=f"{self.__class__.__name__}:{self.camera_name}"
        )
        self._on_started()

    async def shutdown(self, timeout: float | None = None) -> None:
        """Stop the background task and cleanup resources."""
        task = self._task
        if task is None:
            return

        self._stop_event.set()
        self._on_stop()

        if not task.done():
            try:
                await asyncio.wait_for(
                    asyncio.shield(task), timeout=timeout or self._stop_timeout()
                )
            except asyncio.TimeoutError:
                logger.warning(
                    "%s shutdown timed out, cancelling task",
                    self.__class__.__name__,
                    extra=self._extra(),
                )
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        if self._task is task:
            self._task = None
        self._on_stopped()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def is_healthy(self) -> bool:
        """Default health check: task is running (if started)."""
        return self._task_is_healthy()

    def last_heartbeat(self) -> float:
        """Return timestamp (monotonic) of last successful operation."""
        return self._last_heartbeat

    def _touch_heartbeat(self) -> None:
        self._last_heartbeat = self._clock.now()

    def _task_is_healthy(self) -> bool:
        if self._task is None:
            return not self._started
        return not self._task.done()

    def _extra(self, **fields: object) -> dict[str, object]:
        return camera_extra(self.camera_name, **fields)

    async def _wait_or_stop(self, seconds: float) -> bool:
        """Sleep on the clock; wake early on stop. Returns True if stopping."""
        if self._stop_event.is_set():
            return True
        if seconds <= 0:
            await asyncio.sleep(0)
            return self._stop_event.is_set()
        sleep_task = asyncio.ensure_future(self._clock.sleep(seconds))
        stop_task = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({sleep_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for pending in (sleep_task, stop_task):
                if not pending.done():
                    pending.cancel()
        return self._stop_event.is_set()

    async def _run_wrapper(self) -> None:
        try:
            await self._run()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(
                "%s stopped unexpectedly", self.__class__.__name__, extra=self._extra()
            )

    def _stop_timeout(self) -> float:
        return 5.0

    def _on_start(self) -> None:
        """Hook called before starting the background task."""

    def _on_started(self) -> None:
        """Hook called after starting the background task."""

    def _on_stop(self) -> None:
        """Hook called before stopping the background task."""

    def _on_stopped(self) -> None:
        """Hook called after stopping the background task."""

    @abstractmethod
    async def _run(self) -> None:
        """Async task entrypoint."""
        raise NotImplementedError
