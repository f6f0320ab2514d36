"""Helpers for building storage destination paths."""

from __future__ import annotations

from pathlib import PurePosixPath

from mjpegrec.models.segment import Segment


def _sanitize_segment(value: str) -> str:
    cleaned = value.strip().replace("/", "_").replace("\\", "_")
    cleaned = "_".join(part for part in cleaned.split() if part)
    return cleaned or "unknown"


def _normalize_dest_path(path: PurePosixPath) -> str:
    if path.is_absolute():
        raise ValueError(f"dest_path must be relative, got {path}")
    for part in path.parts:
        if part in ("", ".", ".."):
            raise ValueError(f"dest_path contains invalid segment: {path}")
    return str(path)


def build_segment_path(segment: Segment, segments_dir: str) -> str:
    """Build `<segments_dir>/<YYYY>/<MM>/<DD>/<camera>/<file>` for a segment."""
    ts = segment.start_ts
    camera = _sanitize_segment(segment.camera_name)
    filename = _sanitize_segment(segment.local_path.name or f"{segment.segment_id}.avi")
    path = (
        PurePosixPath(_sanitize_segment(segments_dir))
        / f"{ts:%Y}"
        / f"{ts:%m}"
        / f"{ts:%d}"
        / camera
        / filename
    )
    return _normalize_dest_path(path)
