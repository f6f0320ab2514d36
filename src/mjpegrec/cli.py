"""CLI entrypoint for mjpegrec."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

import fire  # type: ignore[import-untyped]

from mjpegrec.app import Application
from mjpegrec.config import ConfigError, load_config, resolve_camera_url
from mjpegrec.logging_setup import configure_logging
from mjpegrec.plugins import discover_storage_plugins
from mjpegrec.plugins.storage import STORAGE_REGISTRY


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for CLI."""
    configure_logging(log_level=level)


class MjpegRec:
    """mjpegrec CLI - record MJPEG camera streams into video segments."""

    def run(self, config: str, log_level: str = "INFO") -> None:
        """Record every active camera until interrupted.

        Args:
            config: Path to YAML config file
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        """
        setup_logging(log_level)

        app = Application(Path(config))

        try:
            asyncio.run(app.run())
        except ConfigError as e:
            print(f"✗ Config invalid: {e}", file=sys.stderr)
            sys.exit(1)
        except KeyboardInterrupt:
            pass  # Handled by signal handlers

    def validate(self, config: str) -> None:
        """Validate config file without running.

        Args:
            config: Path to YAML config file
        """
        config_path = Path(config)

        try:
            cfg = load_config(config_path)
            for camera in cfg.active_cameras():
                resolve_camera_url(camera)

            if cfg.storage.enabled:
                discover_storage_plugins()
                if cfg.storage.backend not in STORAGE_REGISTRY:
                    available = ", ".join(sorted(STORAGE_REGISTRY.keys()))
                    raise ConfigError(
                        f"Unknown storage backend: {cfg.storage.backend!r}. Available: {available}",
                        path=config_path,
                    )
        except ConfigError as e:
            print(f"✗ Config invalid: {e}", file=sys.stderr)
            sys.exit(1)

        print(f"✓ Config valid: {config_path}")
        print(f"  Cameras: {[camera.name for camera in cfg.cameras]}")
        print(f"  Active cameras: {[camera.name for camera in cfg.active_cameras()]}")
        storage = cfg.storage.backend if cfg.storage.enabled else "disabled"
        print(f"  Storage backend: {storage}")
        print(f"  Segment length: {cfg.rotation.duration_s:.0f}s")


def main() -> None:
    """Main CLI entrypoint."""
    # Strip --help/-h when it's the only arg so Fire shows its commands list
    if len(sys.argv) == 2 and sys.argv[1] in ("--help", "-h"):
        sys.argv.pop()
    fire.Fire(MjpegRec)


if __name__ == "__main__":
    main()
