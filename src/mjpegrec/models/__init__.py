"""mjpegrec data models."""

from mjpegrec.models.config import (
    CameraConfig,
    Config,
    DropboxStorageConfig,
    EncoderConfig,
    FilterConfig,
    LabelConfig,
    LocalStorageConfig,
    PathsConfig,
    RotationConfig,
    StorageConfig,
    StreamConfig,
)
from mjpegrec.models.enums import ImageCodec, ParserState, SessionState
from mjpegrec.models.frame import Frame
from mjpegrec.models.segment import Segment
from mjpegrec.models.storage import StorageUploadResult

__all__ = [
    "CameraConfig",
    "Config",
    "DropboxStorageConfig",
    "EncoderConfig",
    "FilterConfig",
    "Frame",
    "ImageCodec",
    "LabelConfig",
    "LocalStorageConfig",
    "ParserState",
    "PathsConfig",
    "RotationConfig",
    "Segment",
    "SessionState",
    "StorageConfig",
    "StorageUploadResult",
    "StreamConfig",
]
