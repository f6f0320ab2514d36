"""Line-oriented parser for multipart MJPEG streams.

The camera sends, per frame, a boundary marker line, a few header lines, a
blank line and then `Content-length` bytes of JPEG data. The stream is read
one newline-terminated line at a time, so JPEG bytes arrive in arbitrary
chunks and the last chunk may carry trailing bytes past the declared length.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from mjpegrec.logging_setup import camera_extra
from mjpegrec.models.enums import ParserState
from mjpegrec.models.frame import Frame

logger = logging.getLogger(__name__)

_BOUNDARY_PREFIX = b"--"
_CONTENT_LENGTH = b"content-length"
_DATE = b"date"
_CONTENT_TYPE = b"content-type"


@dataclass
class StreamHeader:
    """Header fields for the frame currently being read."""

    content_length: int = 0
    date: str = ""


def _header_value(line: bytes, name_len: int) -> bytes:
    rest = line[name_len:].strip()
    if rest.startswith(b":"):
        rest = rest[1:]
    return rest.strip()


class MultipartParser:
    """Two-state (header/body) parser fed one line at a time.

    The parser owns the frame buffer; it is cleared after every frame,
    whether or not the frame turns out to be decodable.
    """

    def __init__(self, *, camera_name: str = "-") -> None:
        self._camera_name = camera_name
        self._state = ParserState.HEADER
        self._header = StreamHeader()
        self._buffer = bytearray()

    @property
    def state(self) -> ParserState:
        return self._state

    @property
    def header(self) -> StreamHeader:
        return self._header

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def reset(self) -> None:
        """Drop any partial frame; used when a new connection starts."""
        self._state = ParserState.HEADER
        self._header = StreamHeader()
        self._buffer.clear()

    def feed_line(self, line: bytes) -> Frame | None:
        """Consume one line; return a Frame when its body is complete."""
        if self._state is ParserState.HEADER:
            return self._read_header(line)

        self._buffer.extend(line)
        if len(self._buffer) < self._header.content_length:
            return None

        logger.debug(
            "End of body %d (content-length %d)",
            len(self._buffer),
            self._header.content_length,
            extra=camera_extra(self._camera_name),
        )
        return self._complete_frame()

    def _complete_frame(self) -> Frame:
        frame = Frame(payload=bytes(self._buffer), date=self._header.date)
        self._buffer.clear()
        self._state = ParserState.HEADER
        return frame

    def _read_header(self, line: bytes) -> Frame | None:
        if line.startswith(_BOUNDARY_PREFIX):
            self._header = StreamHeader()
            return None

        lowered = line.lower()
        if lowered.startswith(_CONTENT_LENGTH):
            raw = _header_value(line, len(_CONTENT_LENGTH))
            try:
                self._header.content_length = int(raw)
            except ValueError:
                logger.warning(
                    "Invalid Content-length %r, treating frame size as 0",
                    raw,
                    extra=camera_extra(self._camera_name),
                )
                self._header.content_length = 0
            return None

        if lowered.startswith(_DATE):
            self._header.date = _header_value(line, len(_DATE)).decode("latin-1")
            return None

        if lowered.startswith(_CONTENT_TYPE):
            return None

        if line.strip(b"\r\n") == b"" and line:
            self._state = ParserState.BODY
            if self._header.content_length <= 0:
                # Nothing to wait for: the frame completes with an empty buffer.
                return self._complete_frame()
        return None
