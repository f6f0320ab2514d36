"""Centralized enums for type safety and IDE support."""

from enum import StrEnum


class ImageCodec(StrEnum):
    """Image codecs accepted by the encoder's stdin stream."""

    PNG = "png"
    JPEG = "jpeg"

    @property
    def extension(self) -> str:
        """File extension understood by OpenCV's encoder lookup."""
        return ".png" if self is ImageCodec.PNG else ".jpg"


class SessionState(StrEnum):
    """Encoder session lifecycle states."""

    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class ParserState(StrEnum):
    """Multipart stream parser states."""

    HEADER = "header"
    BODY = "body"
