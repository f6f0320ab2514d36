"""Main application that wires all components together."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

from mjpegrec.camera.supervisor import CameraSupervisor
from mjpegrec.config import load_config
from mjpegrec.interfaces import StorageBackend
from mjpegrec.models.config import Config
from mjpegrec.plugins import discover_storage_plugins
from mjpegrec.plugins.storage import create_storage
from mjpegrec.uploader import SegmentUploader

logger = logging.getLogger(__name__)


class Application:
    """Main application orchestrator.

    Runs one camera supervisor per active camera and hands their segments
    to the uploader until SIGINT/SIGTERM.
    """

    def __init__(self, config_path: Path) -> None:
        self._config_path = config_path
        self._config: Config | None = None

        self._storage: StorageBackend | None = None
        self._uploader: SegmentUploader | None = None
        self._supervisors: list[CameraSupervisor] = []

        self._shutdown_event = asyncio.Event()
        self._shutdown_started = False

    async def run(self) -> None:
        """Load config, start every camera and run until a shutdown signal."""
        logger.info("Starting mjpegrec...")

        self._config = load_config(self._config_path)
        logger.info("Config loaded from %s", self._config_path)

        await self._create_components()
        self._setup_signal_handlers()

        for supervisor in self._supervisors:
            await supervisor.start()
        logger.info("Recording %d camera(s)", len(self._supervisors))

        await self._shutdown_event.wait()
        await self.shutdown()

    async def _create_components(self) -> None:
        config = self._require_config()

        if config.storage.enabled:
            self._storage = self._create_storage(config)
            await self._check_storage(self._storage)
        else:
            logger.info("Storage disabled; segments stay in %s", config.paths.output_dir)
        self._uploader = SegmentUploader(self._storage, config.storage)

        cameras = config.active_cameras()
        skipped = [camera.name for camera in config.cameras if not camera.active]
        if skipped:
            logger.info("Skipping inactive cameras: %s", ", ".join(skipped))
        if not cameras:
            logger.warning("No active cameras configured")

        self._supervisors = [
            CameraSupervisor(camera, config, on_segment=self._uploader.submit)
            for camera in cameras
        ]

    def _create_storage(self, config: Config) -> StorageBackend:
        discover_storage_plugins()
        return create_storage(config.storage)

    async def _check_storage(self, storage: StorageBackend) -> None:
        if await storage.ping():
            logger.info("Storage backend reachable: %s", self._require_config().storage.backend)
        else:
            logger.warning("Storage backend ping failed; uploads may fail")

    def _require_config(self) -> Config:
        if self._config is None:
            raise RuntimeError("Config not loaded")
        return self._config

    def _setup_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self._handle_signal, sig)

    def _handle_signal(self, sig: signal.Signals) -> None:
        if self._shutdown_started:
            logger.warning("Shutdown already in progress, ignoring signal")
            return

        logger.info("Received signal %s, initiating shutdown...", sig.name)
        self._shutdown_started = True
        self._shutdown_event.set()

    def request_shutdown(self) -> None:
        self._shutdown_started = True
        self._shutdown_event.set()

    async def shutdown(self) -> None:
        """Graceful shutdown of all components."""
        logger.info("Shutting down application...")

        # Supervisors first: their final segments still go to the uploader.
        results = await asyncio.gather(
            *(supervisor.shutdown() for supervisor in self._supervisors),
            return_exceptions=True,
        )
        for supervisor, result in zip(self._supervisors, results):
            if isinstance(result, Exception):
                logger.error(
                    "Camera %s shutdown failed: %s", supervisor.camera_name, result, exc_info=result
                )

        if self._uploader is not None:
            await self._uploader.shutdown()

        if self._storage is not None:
            await self._storage.shutdown()

        logger.info("Application shutdown complete")

    @property
    def config(self) -> Config:
        return self._require_config()

    @property
    def supervisors(self) -> list[CameraSupervisor]:
        return list(self._supervisors)
