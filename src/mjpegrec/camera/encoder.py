from __future__ import annotations

import asyncio
import logging
import shlex
import signal
from pathlib import Path
from typing import Protocol

from mjpegrec.camera.clock import Clock, SystemClock
from mjpegrec.camera.utils import _format_cmd, _read_tail
from mjpegrec.errors import EncoderError
from mjpegrec.logging_setup import camera_extra
from mjpegrec.models.config import EncoderConfig

logger = logging.getLogger(__name__)

_WRITE_TIMEOUT_S = 10.0
_KILL_WAIT_S = 2.0


class EncoderProcess(Protocol):
    @property
    def pid(self) -> int: ...

    @property
    def returncode(self) -> int | None: ...

    async def wait(self) -> int: ...


class Encoder(Protocol):
    async def start(self, output_file: Path, stderr_log: Path) -> EncoderProcess | None: ...

    async def write(self, proc: EncoderProcess, data: bytes) -> None: ...

    async def stop(self, proc: EncoderProcess) -> int | None: ...


class SubprocessEncoder:
    """Runs the configured encoder command with frames piped to its stdin.

    The command template is split with shell rules and `{output}` is
    substituted per argument, so output paths never need quoting.
    """

    def __init__(
        self,
        *,
        command: str,
        nice: int | None,
        stop_timeout_s: float,
        startup_check_s: float,
        camera_name: str = "-",
        clock: Clock | None = None,
    ) -> None:
        self._template = shlex.split(command)
        self._nice = nice
        self._stop_timeout_s = stop_timeout_s
        self._startup_check_s = startup_check_s
        self._camera_name = camera_name
        self._clock = clock or SystemClock()

    @classmethod
    def from_config(
        cls, config: EncoderConfig, *, camera_name: str = "-", clock: Clock | None = None
    ) -> SubprocessEncoder:
        return cls(
            command=config.command,
            nice=config.nice,
            stop_timeout_s=config.stop_timeout_s,
            startup_check_s=config.startup_check_s,
            camera_name=camera_name,
            clock=clock,
        )

    def build_command(self, output_file: Path) -> list[str]:
        args = [part.format(output=str(output_file)) for part in self._template]
        if self._nice is None:
            return args
        return ["nice", "-n", str(self._nice), *args]

    async def start(
        self, output_file: Path, stderr_log: Path
    ) -> asyncio.subprocess.Process | None:
        cmd = self.build_command(output_file)
        extra = camera_extra(self._camera_name)
        logger.debug("Starting encoder: %s", _format_cmd(cmd), extra=extra)

        try:
            with open(stderr_log, "wb") as stderr_file:
                proc = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=stderr_file,
                )
        except OSError as exc:
            logger.error("Failed to start encoder: %s", exc, extra=extra)
            return None

        if self._startup_check_s > 0:
            await self._clock.sleep(self._startup_check_s)
        if proc.returncode is None:
            logger.info("Encoder started (PID: %s): %s", proc.pid, output_file.name, extra=extra)
            return proc

        logger.error(
            "Encoder process died immediately (exit code: %s)", proc.returncode, extra=extra
        )
        logger.error("Check logs at: %s", stderr_log, extra=extra)
        stderr_tail = _read_tail(stderr_log)
        if stderr_tail:
            logger.error("Encoder stderr tail:\n%s", stderr_tail, extra=extra)
        return None

    async def write(self, proc: asyncio.subprocess.Process, data: bytes) -> None:
        stdin = proc.stdin
        if stdin is None or stdin.is_closing():
            raise EncoderError("encoder stdin is closed", camera_name=self._camera_name)
        try:
            stdin.write(data)
            await asyncio.wait_for(stdin.drain(), timeout=_WRITE_TIMEOUT_S)
        except (BrokenPipeError, ConnectionResetError) as exc:
            raise EncoderError(
                f"encoder pipe closed: {exc}", camera_name=self._camera_name, cause=exc
            ) from exc
        except asyncio.TimeoutError as exc:
            raise EncoderError(
                f"encoder write timed out after {_WRITE_TIMEOUT_S:.0f}s",
                camera_name=self._camera_name,
                cause=exc,
            ) from exc

    async def stop(self, proc: asyncio.subprocess.Process) -> int | None:
        """Close stdin, interrupt the encoder and wait for it to finalize the file."""
        extra = camera_extra(self._camera_name)
        if proc.stdin is not None and not proc.stdin.is_closing():
            proc.stdin.close()

        if proc.returncode is None:
            try:
                proc.send_signal(signal.SIGINT)
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(proc.wait(), timeout=self._stop_timeout_s)
            except asyncio.TimeoutError:
                logger.warning(
                    "Encoder did not exit after SIGINT, killing (PID: %s)", proc.pid, extra=extra
                )
                try:
                    proc.kill()
                    await asyncio.wait_for(proc.wait(), timeout=_KILL_WAIT_S)
                except ProcessLookupError:
                    pass
                except asyncio.TimeoutError:
                    logger.error("Failed to reap encoder process (PID: %s)", proc.pid, extra=extra)

        logger.debug(
            "Stopped encoder (PID: %s, exit code: %s)", proc.pid, proc.returncode, extra=extra
        )
        return proc.returncode
