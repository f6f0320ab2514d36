from __future__ import annotations

import logging
from dataclasses import dataclass

import cv2
import numpy as np
import numpy.typing as npt

from mjpegrec.camera.clock import Clock, SystemClock
from mjpegrec.camera.imaging import decode_jpeg, draw_label, encode_image, to_bgr
from mjpegrec.camera.similarity import compare
from mjpegrec.errors import FrameDecodeError
from mjpegrec.logging_setup import camera_extra
from mjpegrec.models.config import FilterConfig
from mjpegrec.models.enums import ImageCodec
from mjpegrec.models.frame import Frame

logger = logging.getLogger(__name__)


@dataclass
class FrameFilterStats:
    decoded: int = 0
    accepted: int = 0
    dropped_decode: int = 0
    dropped_rate: int = 0
    dropped_similar: int = 0
    dropped_encode: int = 0


class FrameFilter:
    """Decides which stream frames reach the encoder.

    Gates, in order: JPEG decode, frame rate, similarity to the previous
    frame. The reference image is replaced by every frame that reaches the
    similarity gate, so slow drift is measured frame to frame.
    """

    def __init__(
        self,
        *,
        camera_name: str,
        config: FilterConfig,
        clock: Clock | None = None,
    ) -> None:
        self._camera_name = camera_name
        # Raises ValueError for anything but png/jpeg.
        self._codec = ImageCodec(str(config.image_codec).lower())
        self._jpeg_quality = int(config.jpeg_quality)
        self._interval_s = float(config.frame_interval_s)
        self._threshold = float(config.similarity_threshold)
        self._label_enabled = bool(config.label.enabled)
        self._label_size = (int(config.label.width), int(config.label.height))
        self._clock = clock or SystemClock()

        self._reference: npt.NDArray[np.uint8] | None = None
        self._last_accepted_at: float | None = None
        self._last_score: float | None = None
        self.stats = FrameFilterStats()

    @property
    def last_score(self) -> float | None:
        return self._last_score

    @property
    def codec(self) -> ImageCodec:
        return self._codec

    def process(self, frame: Frame) -> bytes | None:
        """Return the encoded frame if accepted, otherwise None."""
        try:
            image = decode_jpeg(frame.payload)
        except FrameDecodeError as exc:
            self.stats.dropped_decode += 1
            logger.warning(
                "jpeg ERROR: %s (header %s, %d bytes)",
                exc,
                exc.head.hex(),
                len(frame.payload),
                extra=camera_extra(self._camera_name),
            )
            return None
        self.stats.decoded += 1

        now = self._clock.now()
        if self._arriving_too_fast(now):
            self.stats.dropped_rate += 1
            return None

        score = compare(image, self._reference, exclude=self._label_size)
        self._reference = image
        self._last_score = score
        if score < self._threshold:
            self.stats.dropped_similar += 1
            return None

        try:
            encoded = self._render(image, frame.date)
        except (cv2.error, RuntimeError) as exc:
            self.stats.dropped_encode += 1
            logger.error(
                "Failed to encode frame: %s", exc, exc_info=True, extra=camera_extra(self._camera_name)
            )
            return None

        self._last_accepted_at = now
        self.stats.accepted += 1
        return encoded

    def _arriving_too_fast(self, now: float) -> bool:
        if self._last_accepted_at is None:
            return False
        return self._last_accepted_at + self._interval_s > now

    def _render(self, image: npt.NDArray[np.uint8], date: str) -> bytes:
        canvas = to_bgr(image)
        if self._label_enabled:
            width, height = self._label_size
            draw_label(canvas, f"{self._camera_name}: {date}", width=width, height=height)
        return encode_image(canvas, self._codec, jpeg_quality=self._jpeg_quality)
