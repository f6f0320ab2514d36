"""Configuration models.

All models are frozen: the configuration is loaded once at startup and passed
explicitly into every component constructor.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from mjpegrec.models.enums import ImageCodec

logger = logging.getLogger(__name__)

MIN_ROTATION_S = 30.0

DEFAULT_ENCODER_COMMAND = (
    "ffmpeg -hide_banner -loglevel warning -f image2pipe -framerate 15 -i - "
    "-c:v mjpeg -q:v 5 -y {output}"
)


class CameraConfig(BaseModel):
    """Camera stream configuration."""

    model_config = {"extra": "forbid", "frozen": True}

    name: str
    url: str | None = None
    url_env: str | None = None
    active: bool = True

    @field_validator("name")
    @classmethod
    def _validate_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("camera name must not be empty")
        return cleaned

    @model_validator(mode="after")
    def _require_url(self) -> CameraConfig:
        if not (self.url or self.url_env):
            raise ValueError(f"camera {self.name!r} requires url or url_env")
        return self


class StreamConfig(BaseModel):
    """HTTP stream reader configuration."""

    model_config = {"extra": "forbid", "frozen": True}

    reconnect_backoff_s: float = Field(
        default=1.0,
        ge=0.0,
        description="Fixed delay before re-dialling after a failed connection.",
    )
    max_attempts: int = Field(
        default=0,
        ge=0,
        description="Consecutive failed connections before giving up (0 = retry forever).",
    )
    connect_timeout_s: float = Field(default=10.0, gt=0.0)
    read_timeout_s: float = Field(
        default=30.0,
        ge=0.0,
        description="Idle read timeout; the camera is re-dialled when exceeded (0 = none).",
    )
    read_bufsize: int = Field(
        default=1024 * 1024,
        ge=64 * 1024,
        description="Line reader buffer size; binary JPEG lines can be long.",
    )
    heartbeat_s: float = Field(
        default=60.0,
        ge=0.0,
        description="Seconds between per-camera frame statistics logs (0 = disabled).",
    )


class LabelConfig(BaseModel):
    """On-image label overlay configuration."""

    model_config = {"extra": "forbid", "frozen": True}

    enabled: bool = False
    width: int = Field(default=600, ge=1)
    height: int = Field(default=14, ge=1)


class FilterConfig(BaseModel):
    """Frame filter configuration."""

    model_config = {"extra": "forbid", "frozen": True}

    fps: float = Field(default=15.0, gt=0.0, description="Target frames per second.")
    similarity_threshold: float = Field(
        default=1.05,
        ge=0.0,
        le=100.0,
        description="Frames scoring below this difference against the previous frame are dropped.",
    )
    image_codec: ImageCodec = ImageCodec.PNG
    jpeg_quality: int = Field(default=75, ge=1, le=100)
    label: LabelConfig = Field(default_factory=LabelConfig)

    @field_validator("image_codec", mode="before")
    @classmethod
    def _normalize_codec(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def frame_interval_s(self) -> float:
        return 1.0 / self.fps


class EncoderConfig(BaseModel):
    """External encoder process configuration."""

    model_config = {"extra": "forbid", "frozen": True}

    command: str = Field(
        default=DEFAULT_ENCODER_COMMAND,
        description="Encoder command line; {output} is replaced by the temp output path.",
    )
    nice: int | None = Field(default=10, ge=-20, le=19)
    extension: str = ".avi"
    queue_size: int = Field(default=200, ge=1)
    stop_timeout_s: float = Field(default=10.0, gt=0.0)
    startup_check_s: float = Field(
        default=0.5,
        ge=0.0,
        description="Delay before checking that a freshly started encoder is still alive.",
    )

    @field_validator("command")
    @classmethod
    def _validate_command(cls, value: str) -> str:
        if "{output}" not in value:
            raise ValueError("encoder.command must contain the {output} placeholder")
        try:
            value.format(output="x")
        except (KeyError, IndexError, ValueError) as exc:
            raise ValueError(f"encoder.command has invalid placeholders: {exc}") from exc
        return value

    @field_validator("extension")
    @classmethod
    def _normalize_extension(cls, value: str) -> str:
        ext = value.strip()
        if not ext:
            raise ValueError("encoder.extension must not be empty")
        if not ext.startswith("."):
            ext = f".{ext}"
        return ext


class RotationConfig(BaseModel):
    """Segment rotation configuration."""

    model_config = {"extra": "forbid", "frozen": True}

    duration_s: float = Field(default=300.0, gt=0.0)

    @field_validator("duration_s")
    @classmethod
    def _apply_floor(cls, value: float) -> float:
        if value < MIN_ROTATION_S:
            logger.warning(
                "rotation.duration_s=%.1f is below the %.0fs minimum, using %.0fs",
                value,
                MIN_ROTATION_S,
                MIN_ROTATION_S,
            )
            return MIN_ROTATION_S
        return value


class PathsConfig(BaseModel):
    """Local directories for in-progress and finished segments."""

    model_config = {"extra": "forbid", "frozen": True}

    temp_dir: str = "/tmp/mjpegrec"
    output_dir: str = "./segments"


class DropboxStorageConfig(BaseModel):
    """Dropbox storage configuration."""

    model_config = {"frozen": True}

    root: str
    token_env: str = "DROPBOX_TOKEN"
    app_key_env: str = "DROPBOX_APP_KEY"
    app_secret_env: str = "DROPBOX_APP_SECRET"
    refresh_token_env: str = "DROPBOX_REFRESH_TOKEN"
    web_url_prefix: str = "https://www.dropbox.com/home"


class LocalStorageConfig(BaseModel):
    """Local storage configuration."""

    model_config = {"frozen": True}

    root: str = "./storage"


class StorageConfig(BaseModel):
    """Segment storage configuration.

    Note: Backend names are validated against the storage registry when the
    backend is created, so only built-in backends are checked here.
    """

    model_config = {"extra": "forbid", "frozen": True}

    enabled: bool = True
    backend: str = "local"
    dropbox: DropboxStorageConfig | None = None
    local: LocalStorageConfig | None = None
    segments_dir: str = "segments"
    delete_after_upload: bool = True
    upload_workers: int = Field(default=2, ge=1)

    @field_validator("backend", mode="before")
    @classmethod
    def _normalize_backend(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.lower()
        return value

    @model_validator(mode="after")
    def _validate_builtin_backends(self) -> StorageConfig:
        if not self.enabled:
            return self
        match self.backend:
            case "dropbox":
                if self.dropbox is None:
                    raise ValueError(
                        "storage.dropbox is required when backend=dropbox. "
                        "Add 'storage.dropbox' section to your config."
                    )
            case "local":
                if self.local is None:
                    raise ValueError(
                        "storage.local is required when backend=local. "
                        "Add 'storage.local' section to your config."
                    )
            case _:
                pass
        return self


class Config(BaseModel):
    """Main configuration."""

    model_config = {"extra": "forbid", "frozen": True}

    version: int = 1
    cameras: list[CameraConfig] = Field(min_length=1)
    stream: StreamConfig = Field(default_factory=StreamConfig)
    filter: FilterConfig = Field(default_factory=FilterConfig)
    encoder: EncoderConfig = Field(default_factory=EncoderConfig)
    rotation: RotationConfig = Field(default_factory=RotationConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    storage: StorageConfig

    @model_validator(mode="after")
    def _validate_unique_cameras(self) -> Config:
        seen: set[str] = set()
        for camera in self.cameras:
            if camera.name in seen:
                raise ValueError(f"duplicate camera name: {camera.name}")
            seen.add(camera.name)
        return self

    def active_cameras(self) -> list[CameraConfig]:
        """Return cameras with `active: true`, in config order."""
        return [camera for camera in self.cameras if camera.active]
