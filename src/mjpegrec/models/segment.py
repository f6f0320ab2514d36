"""Segment data models."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel


class Segment(BaseModel):
    """A finished video file produced by one encoder session."""

    segment_id: str
    camera_name: str
    local_path: Path
    start_ts: datetime
    end_ts: datetime
    duration_s: float
    frames_written: int = 0
