from __future__ import annotations

import logging
import re
import shlex
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger(__name__)


def _redact_url(url: str) -> str:
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if "@" not in parts.netloc:
        return url
    host = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit((parts.scheme, f"***:***@{host}", parts.path, parts.query, parts.fragment))


def _format_cmd(cmd: list[str]) -> str:
    try:
        return shlex.join([str(x) for x in cmd])
    except Exception as exc:
        logger.warning("Failed to format command with shlex.join: %s", exc, exc_info=True)
        return " ".join([str(x) for x in cmd])


def _next_backoff(backoff_s: float, cap_s: float, *, factor: float = 1.6) -> float:
    return min(backoff_s * factor, cap_s)


def _sanitize_name(name: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9_-]+", "_", name.strip())
    cleaned = re.sub(r"_+", "_", cleaned).strip("_")
    return cleaned or "camera"


def _read_tail(path: Path, max_bytes: int = 4000) -> str:
    try:
        data = path.read_bytes()
    except Exception as exc:
        logger.warning("Failed to read stderr tail: %s", exc, exc_info=True)
        return ""
    if len(data) <= max_bytes:
        return data.decode(errors="replace")
    return data[-max_bytes:].decode(errors="replace")
