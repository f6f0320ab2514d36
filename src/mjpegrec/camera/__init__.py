"""Per-camera recording pipeline."""

from mjpegrec.camera.encoder import Encoder, SubprocessEncoder
from mjpegrec.camera.frame_filter import FrameFilter, FrameFilterStats
from mjpegrec.camera.frame_queue import FrameQueue
from mjpegrec.camera.multipart import MultipartParser, StreamHeader
from mjpegrec.camera.session import EncoderSession, EncoderSessionManager, RotationTimer
from mjpegrec.camera.similarity import compare
from mjpegrec.camera.stream import HttpStreamConnector, MjpegStreamReader
from mjpegrec.camera.supervisor import CameraSupervisor

__all__ = [
    "CameraSupervisor",
    "Encoder",
    "EncoderSession",
    "EncoderSessionManager",
    "FrameFilter",
    "FrameFilterStats",
    "FrameQueue",
    "HttpStreamConnector",
    "MjpegStreamReader",
    "MultipartParser",
    "RotationTimer",
    "StreamHeader",
    "SubprocessEncoder",
    "compare",
]
