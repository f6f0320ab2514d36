"""mjpegrec: MJPEG camera stream to rotated video segments."""

__version__ = "0.1.0"

from mjpegrec.errors import MjpegRecError
from mjpegrec.models.frame import Frame
from mjpegrec.models.segment import Segment

__all__ = [
    "Frame",
    "MjpegRecError",
    "Segment",
    "__version__",
]
