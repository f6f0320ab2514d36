"""Error hierarchy for mjpegrec camera stages."""

from __future__ import annotations


class MjpegRecError(Exception):
    """Base exception for all camera pipeline errors.

    Preserves stack traces via exception chaining.
    """

    def __init__(
        self,
        message: str,
        stage: str,
        camera_name: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.stage = stage
        self.camera_name = camera_name
        self.cause = cause
        self.__cause__ = cause


class StreamError(MjpegRecError):
    """Camera stream could not be opened."""

    def __init__(
        self, message: str, *, camera_name: str | None = None, cause: Exception | None = None
    ) -> None:
        super().__init__(message, stage="stream", camera_name=camera_name, cause=cause)


class FrameDecodeError(MjpegRecError):
    """A frame payload is not a decodable JPEG image."""

    def __init__(self, message: str, *, head: bytes = b"", cause: Exception | None = None) -> None:
        super().__init__(message, stage="decode", cause=cause)
        self.head = head


class EncoderError(MjpegRecError):
    """Writing to the encoder subprocess failed."""

    def __init__(
        self, message: str, *, camera_name: str | None = None, cause: Exception | None = None
    ) -> None:
        super().__init__(message, stage="encoder", camera_name=camera_name, cause=cause)


class UploadError(MjpegRecError):
    """Segment upload failed."""

    def __init__(
        self,
        segment_id: str,
        storage_uri: str | None,
        cause: Exception,
        *,
        camera_name: str | None = None,
    ) -> None:
        super().__init__(
            f"Upload failed for {segment_id}",
            stage="upload",
            camera_name=camera_name,
            cause=cause,
        )
        self.segment_id = segment_id
        self.storage_uri = storage_uri
