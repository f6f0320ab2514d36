"""Local filesystem storage backend."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path, PurePosixPath
from typing import cast

from pydantic import BaseModel

from mjpegrec.interfaces import StorageBackend
from mjpegrec.models.config import LocalStorageConfig
from mjpegrec.models.storage import StorageUploadResult
from mjpegrec.plugins.storage import StoragePlugin, storage_plugin

logger = logging.getLogger(__name__)


class LocalStorage(StorageBackend):
    """Copies segments into a directory tree, e.g. a mounted NAS share."""

    def __init__(self, config: LocalStorageConfig) -> None:
        self.root = Path(config.root).expanduser().resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self._shutdown_called = False

    async def put_file(self, local_path: Path, dest_path: str) -> StorageUploadResult:
        self._ensure_open()
        dest = self._full_dest_path(dest_path)
        dest.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(shutil.copy2, local_path, dest)
        logger.debug("Copied %s to %s", local_path, dest)
        return StorageUploadResult(storage_uri=f"local:{dest}", view_url=f"file://{dest}")

    async def ping(self) -> bool:
        return self.root.exists() and self.root.is_dir()

    async def shutdown(self, timeout: float | None = None) -> None:
        _ = timeout
        self._shutdown_called = True

    def _ensure_open(self) -> None:
        if self._shutdown_called:
            raise RuntimeError("Storage has been shut down")

    def _full_dest_path(self, dest_path: str) -> Path:
        cleaned = str(dest_path).lstrip("/")
        if not cleaned or "\\" in cleaned:
            raise ValueError(f"Invalid dest_path: {dest_path}")
        path = PurePosixPath(cleaned)
        if ".." in path.parts:
            raise ValueError(f"Invalid dest_path: {dest_path}")
        return self.root.joinpath(*path.parts)


@storage_plugin(name="local")
def local_storage_plugin() -> StoragePlugin:
    def factory(cfg: BaseModel) -> StorageBackend:
        return LocalStorage(cast(LocalStorageConfig, cfg))

    return StoragePlugin(name="local", config_model=LocalStorageConfig, factory=factory)
