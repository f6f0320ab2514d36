"""Frame data models."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Frame:
    """One JPEG payload extracted from the camera stream."""

    payload: bytes
    date: str = ""
