"""Fake clock for deterministic timing."""

from __future__ import annotations

import asyncio


class FakeClock:
    """Monotonic clock that only moves when told to.

    `sleep()` advances time by the requested amount and yields once to the
    event loop, so loops built on it run without real delays.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += float(seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(float(seconds))
        self._now += float(seconds)
        await asyncio.sleep(0)
