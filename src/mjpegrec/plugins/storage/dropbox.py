"""Dropbox storage backend plugin."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path, PurePosixPath
from typing import BinaryIO, cast

import dropbox  # type: ignore[import-untyped]
from pydantic import BaseModel

from mjpegrec.interfaces import StorageBackend
from mjpegrec.models.config import DropboxStorageConfig
from mjpegrec.models.storage import StorageUploadResult
from mjpegrec.plugins.storage import StoragePlugin, storage_plugin

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4 * 1024 * 1024


class DropboxStorage(StorageBackend):
    """Dropbox storage backend.

    Uploads overwrite existing files, so re-uploading a segment is safe.

    Supports two auth modes:
    1. Simple token: Set DROPBOX_TOKEN env var
    2. Refresh token flow: Set DROPBOX_APP_KEY, DROPBOX_APP_SECRET, DROPBOX_REFRESH_TOKEN
    """

    def __init__(self, config: DropboxStorageConfig) -> None:
        self.root = str(config.root).rstrip("/")
        self.web_url_prefix = str(config.web_url_prefix)
        self.client = self._create_client(config)
        self._shutdown_called = False

        logger.info("DropboxStorage initialized: root=%s", self.root)

    def _create_client(self, config: DropboxStorageConfig) -> dropbox.Dropbox:
        """Create Dropbox client from env vars.

        Tries simple token first, then falls back to refresh token flow.
        """
        token_var = str(config.token_env)
        token = os.getenv(token_var)
        if token:
            logger.info("Using Dropbox simple token auth")
            return dropbox.Dropbox(token)

        app_key_var = str(config.app_key_env)
        app_secret_var = str(config.app_secret_env)
        refresh_token_var = str(config.refresh_token_env)

        app_key = os.getenv(app_key_var)
        app_secret = os.getenv(app_secret_var)
        refresh_token = os.getenv(refresh_token_var)

        if app_key and app_secret and refresh_token:
            logger.info("Using Dropbox refresh token auth")
            return dropbox.Dropbox(
                app_key=app_key,
                app_secret=app_secret,
                oauth2_refresh_token=refresh_token,
            )

        raise ValueError(
            f"Missing Dropbox credentials. Set {token_var} or "
            f"({app_key_var}, {app_secret_var}, {refresh_token_var})."
        )

    async def put_file(self, local_path: Path, dest_path: str) -> StorageUploadResult:
        """Upload file to Dropbox."""
        self._ensure_open()

        remote_path = self._full_dest_path(dest_path)
        await asyncio.to_thread(self._upload_file, local_path, remote_path)

        prefix = self.web_url_prefix.rstrip("/")
        return StorageUploadResult(
            storage_uri=f"dropbox:{remote_path}", view_url=f"{prefix}{remote_path}"
        )

    def _upload_file(self, local_path: Path, remote_path: str) -> None:
        file_size = local_path.stat().st_size
        with open(local_path, "rb") as f:
            if file_size <= CHUNK_SIZE:
                self.client.files_upload(
                    f.read(),
                    remote_path,
                    mode=dropbox.files.WriteMode.overwrite,
                )
            else:
                self._upload_file_chunked(f, remote_path, file_size)
        logger.debug("Uploaded to Dropbox: %s", remote_path)

    def _upload_file_chunked(self, file_handle: BinaryIO, remote_path: str, file_size: int) -> None:
        """Upload file in chunks using a Dropbox upload session."""
        chunk = file_handle.read(CHUNK_SIZE)
        if not chunk:
            raise ValueError("Cannot upload empty file")

        session = self.client.files_upload_session_start(chunk)
        cursor = dropbox.files.UploadSessionCursor(
            session_id=session.session_id,
            offset=file_handle.tell(),
        )
        commit = dropbox.files.CommitInfo(
            path=remote_path,
            mode=dropbox.files.WriteMode.overwrite,
        )

        while file_handle.tell() < file_size:
            chunk = file_handle.read(CHUNK_SIZE)
            if not chunk:
                raise RuntimeError("Unexpected end of file during chunked upload")
            if file_handle.tell() >= file_size:
                self.client.files_upload_session_finish(chunk, cursor, commit)
                return
            self.client.files_upload_session_append_v2(chunk, cursor)
            cursor.offset = file_handle.tell()

    async def ping(self) -> bool:
        """Verify the account is reachable with the configured credentials."""
        try:
            await asyncio.to_thread(self.client.users_get_current_account)
            return True
        except Exception as e:
            logger.warning("Dropbox ping failed: %s", e, exc_info=True)
            return False

    async def shutdown(self, timeout: float | None = None) -> None:
        _ = timeout
        if self._shutdown_called:
            return

        self._shutdown_called = True
        logger.info("DropboxStorage closed")

    def _ensure_open(self) -> None:
        if self._shutdown_called:
            raise RuntimeError("Storage has been shut down")

    def _full_dest_path(self, dest_path: str) -> str:
        cleaned = str(dest_path).lstrip("/")
        if not cleaned or "\\" in cleaned:
            raise ValueError(f"Invalid dest_path: {dest_path}")
        path = PurePosixPath(cleaned)
        if ".." in path.parts:
            raise ValueError(f"Invalid dest_path: {dest_path}")
        return f"{self.root}/{path}"


@storage_plugin(name="dropbox")
def dropbox_storage_plugin() -> StoragePlugin:
    def factory(cfg: BaseModel) -> StorageBackend:
        return DropboxStorage(cast(DropboxStorageConfig, cfg))

    return StoragePlugin(name="dropbox", config_model=DropboxStorageConfig, factory=factory)
