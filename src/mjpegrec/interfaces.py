"""Interface definitions for mjpegrec components."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mjpegrec.models.segment import Segment
    from mjpegrec.models.storage import StorageUploadResult


class Shutdownable(ABC):
    """Async shutdown interface for managed components."""

    @abstractmethod
    async def shutdown(self, timeout: float | None = None) -> None:
        """Release resources and stop background work."""
        raise NotImplementedError


class StorageBackend(Shutdownable, ABC):
    """Persists finished segments."""

    @abstractmethod
    async def put_file(self, local_path: Path, dest_path: str) -> StorageUploadResult:
        """Upload file to storage. Returns storage result."""
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> bool:
        """Health check. Returns True if storage is reachable."""
        raise NotImplementedError


class SegmentSink(Shutdownable, ABC):
    """Receives finished segments for persistence.

    `submit()` is called from the encoder loop and must not block it:
    implementations schedule their work and return immediately.
    """

    @abstractmethod
    def submit(self, segment: Segment) -> None:
        """Hand a finished segment over for persistence."""
        raise NotImplementedError
