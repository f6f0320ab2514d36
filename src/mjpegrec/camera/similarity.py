from __future__ import annotations

import logging

import numpy as np
import numpy.typing as npt

logger = logging.getLogger(__name__)

MAX_SCORE = 100.0


def _channel_count(image: npt.NDArray[np.generic]) -> int:
    return 1 if image.ndim == 2 else int(image.shape[2])


def _color_planes(image: npt.NDArray[np.generic]) -> npt.NDArray[np.int64]:
    """Return the colour channels as int64, dropping alpha."""
    if image.ndim == 2:
        planes = image
    elif image.shape[2] >= 3:
        planes = image[:, :, :3]
    else:
        planes = image[:, :, 0]
    return planes.astype(np.int64)


def compare(
    source: npt.NDArray[np.generic],
    target: npt.NDArray[np.generic] | None,
    *,
    exclude: tuple[int, int] = (0, 0),
) -> float:
    """Perceptual difference between two images on a 0-100 scale.

    Sums absolute red/green/blue differences over every pixel outside the
    top-left `exclude` (width, height) band and normalizes by the largest
    possible sum over the whole image, band included. No reference, a
    different channel layout or different dimensions score MAX_SCORE.
    """
    if target is None:
        return MAX_SCORE

    if source.dtype != target.dtype or _channel_count(source) != _channel_count(target):
        logger.debug("different color models")
        return MAX_SCORE

    if source.shape[:2] != target.shape[:2]:
        logger.debug("different image sizes")
        return MAX_SCORE

    height, width = source.shape[:2]
    diff = np.abs(_color_planes(source) - _color_planes(target))

    ex_w = max(0, min(int(exclude[0]), width))
    ex_h = max(0, min(int(exclude[1]), height))
    if ex_w and ex_h:
        diff[:ex_h, :ex_w] = 0

    pixel_count = width * height
    if pixel_count == 0:
        return 0.0

    total = int(diff.sum())
    if diff.ndim == 2:
        # Grey pixels carry the same delta on all three colour channels.
        total *= 3

    max_value = int(np.iinfo(source.dtype).max) if np.issubdtype(source.dtype, np.integer) else 1
    return MAX_SCORE * total / (pixel_count * max_value * 3)
