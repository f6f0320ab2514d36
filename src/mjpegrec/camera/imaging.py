"""JPEG decoding, label drawing and re-encoding with OpenCV."""

from __future__ import annotations

from typing import cast

import cv2
import numpy as np
import numpy.typing as npt

from mjpegrec.errors import FrameDecodeError
from mjpegrec.models.enums import ImageCodec

_JPEG_SOI = b"\xff\xd8"

LABEL_BACKGROUND = (255, 255, 255)
LABEL_COLOR = (0, 0, 0)
_LABEL_FONT = cv2.FONT_HERSHEY_PLAIN
_LABEL_SCALE = 0.8


def decode_jpeg(payload: bytes) -> npt.NDArray[np.uint8]:
    """Decode a JPEG payload, keeping its native channel layout.

    Bytes after the JPEG end marker are ignored by the decoder.
    """
    head = payload[:2]
    if head != _JPEG_SOI:
        raise FrameDecodeError("missing JPEG start-of-image marker", head=head)

    buf = np.frombuffer(payload, dtype=np.uint8)
    try:
        image = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED)
    except cv2.error as exc:
        raise FrameDecodeError(f"jpeg decode failed: {exc}", head=head, cause=exc) from exc
    if image is None:
        raise FrameDecodeError("jpeg decode failed", head=head)
    return cast(npt.NDArray[np.uint8], image)


def to_bgr(image: npt.NDArray[np.uint8]) -> npt.NDArray[np.uint8]:
    """Return a new 3-channel BGR buffer holding the image."""
    if image.ndim == 2:
        return cast(npt.NDArray[np.uint8], cv2.cvtColor(image, cv2.COLOR_GRAY2BGR))
    if image.shape[2] == 4:
        return cast(npt.NDArray[np.uint8], cv2.cvtColor(image, cv2.COLOR_BGRA2BGR))
    return image.copy()


def draw_label(canvas: npt.NDArray[np.uint8], text: str, *, width: int, height: int) -> None:
    """Paint an opaque band in the top-left corner and write `text` on it."""
    cv2.rectangle(canvas, (0, 0), (width - 1, height - 1), LABEL_BACKGROUND, thickness=-1)
    cv2.putText(
        canvas,
        text,
        (2, max(1, height - 3)),
        _LABEL_FONT,
        _LABEL_SCALE,
        LABEL_COLOR,
        1,
        cv2.LINE_8,
    )


def encode_image(
    image: npt.NDArray[np.uint8], codec: ImageCodec | str, *, jpeg_quality: int = 75
) -> bytes:
    """Encode an image with the configured codec (png or jpeg only)."""
    match str(codec).lower():
        case ImageCodec.PNG:
            ok, buf = cv2.imencode(ImageCodec.PNG.extension, image)
        case ImageCodec.JPEG:
            ok, buf = cv2.imencode(
                ImageCodec.JPEG.extension, image, [cv2.IMWRITE_JPEG_QUALITY, int(jpeg_quality)]
            )
        case _:
            raise ValueError(f"Invalid image codec: {codec}")
    if not ok:
        raise RuntimeError(f"{codec} encode failed")
    return buf.tobytes()
