"""Segment sink that uploads finished segments to the storage backend."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from mjpegrec.errors import UploadError
from mjpegrec.interfaces import SegmentSink, StorageBackend
from mjpegrec.logging_setup import camera_extra
from mjpegrec.models.config import StorageConfig
from mjpegrec.models.segment import Segment
from mjpegrec.storage_paths import build_segment_path

logger = logging.getLogger(__name__)


class SegmentUploader(SegmentSink):
    """Uploads each submitted segment in its own task.

    Failed uploads are logged and the local file is kept; nothing is retried.
    With no storage backend, segments simply stay in the output directory.
    """

    def __init__(self, storage: StorageBackend | None, config: StorageConfig) -> None:
        self._storage = storage
        self._segments_dir = config.segments_dir
        self._delete_after_upload = config.delete_after_upload
        self._sem = asyncio.Semaphore(config.upload_workers)
        self._tasks: set[asyncio.Task[None]] = set()
        self.uploaded = 0
        self.failed = 0

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def submit(self, segment: Segment) -> None:
        if self._storage is None:
            logger.info(
                "Storage disabled, keeping %s",
                segment.local_path,
                extra=camera_extra(segment.camera_name, segment_id=segment.segment_id),
            )
            return
        task = asyncio.get_running_loop().create_task(
            self._upload(segment), name=f"upload:{segment.segment_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(self._log_task_exception)

    def _log_task_exception(self, task: asyncio.Task[None]) -> None:
        try:
            exc = task.exception()
        except asyncio.CancelledError:
            return
        if exc is not None:
            logger.error("Segment upload task failed: %s", exc, exc_info=exc)

    async def _upload(self, segment: Segment) -> None:
        assert self._storage is not None
        extra = camera_extra(segment.camera_name, segment_id=segment.segment_id)
        dest_path = build_segment_path(segment, self._segments_dir)

        async with self._sem:
            try:
                result = await self._storage.put_file(segment.local_path, dest_path)
            except Exception as e:
                self.failed += 1
                err = UploadError(
                    segment.segment_id, storage_uri=None, cause=e, camera_name=segment.camera_name
                )
                logger.error("%s: %s", err, e, exc_info=e, extra=extra)
                return

        self.uploaded += 1
        logger.info("Upload complete for %s: %s", segment.segment_id, result.storage_uri, extra=extra)
        if self._delete_after_upload:
            _remove_local(segment.local_path, extra)

    async def shutdown(self, timeout: float | None = 30.0) -> None:
        """Wait for in-flight uploads to complete."""
        if not self._tasks:
            return
        logger.info("Waiting for %d in-flight uploads...", len(self._tasks))
        try:
            await asyncio.wait_for(
                asyncio.gather(*self._tasks, return_exceptions=True),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Timeout waiting for uploads, cancelling...")
            for task in list(self._tasks):
                task.cancel()


def _remove_local(path: Path, extra: dict[str, object]) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Failed to remove uploaded segment %s: %s", path, exc, extra=extra)
