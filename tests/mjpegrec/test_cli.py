"""Tests for CLI module."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import yaml

from mjpegrec.cli import MjpegRec, setup_logging
from mjpegrec.config import ConfigError


def _minimal_config(tmp_path: Path) -> dict[str, object]:
    """Return minimal valid config dict for testing."""
    return {
        "version": 1,
        "cameras": [
            {"name": "front_door", "url": "http://camera.local/video.cgi"},
            {"name": "garage", "url": "http://garage.local/video.cgi", "active": False},
        ],
        "rotation": {"duration_s": 120},
        "storage": {
            "backend": "local",
            "local": {"root": str(tmp_path / "storage")},
        },
    }


def _write_config(tmp_path: Path, data: dict[str, object]) -> Path:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.dump(data))
    return config_path


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_configures_logging_with_default_level(self) -> None:
        # Given: Default log level

        # When: Calling setup_logging
        with patch("mjpegrec.cli.configure_logging") as mock_configure:
            setup_logging()

        # Then: configure_logging is called with INFO
        mock_configure.assert_called_once_with(log_level="INFO")

    def test_configures_logging_with_custom_level(self) -> None:
        with patch("mjpegrec.cli.configure_logging") as mock_configure:
            setup_logging("DEBUG")

        mock_configure.assert_called_once_with(log_level="DEBUG")


class TestMjpegRecValidate:
    """Tests for validate command."""

    def test_validate_valid_config(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Validates and prints config details for valid config."""
        # Given: A valid config file
        config_path = _write_config(tmp_path, _minimal_config(tmp_path))

        # When: Validating the config
        MjpegRec().validate(str(config_path))

        # Then: Success message and a summary are printed
        captured = capsys.readouterr()
        assert "✓ Config valid" in captured.out
        assert "Cameras: ['front_door', 'garage']" in captured.out
        assert "Active cameras: ['front_door']" in captured.out
        assert "Storage backend: local" in captured.out
        assert "Segment length: 120s" in captured.out

    def test_validate_disabled_storage(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        data = _minimal_config(tmp_path)
        data["storage"] = {"enabled": False}
        config_path = _write_config(tmp_path, data)

        MjpegRec().validate(str(config_path))

        assert "Storage backend: disabled" in capsys.readouterr().out

    def test_validate_invalid_config_exits(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Exits with error for invalid config."""
        # Given: An invalid config file (missing required fields)
        config_path = _write_config(tmp_path, {"version": 1})

        # When/Then: Validating raises SystemExit
        with pytest.raises(SystemExit) as exc_info:
            MjpegRec().validate(str(config_path))

        # Then: Exit code is 1 and error is printed
        assert exc_info.value.code == 1
        assert "✗ Config invalid" in capsys.readouterr().err

    def test_validate_nonexistent_config_exits(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            MjpegRec().validate(str(tmp_path / "nonexistent.yaml"))

        assert exc_info.value.code == 1
        assert "✗ Config invalid" in capsys.readouterr().err

    def test_validate_missing_camera_env_exits(
        self,
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        # Given: An active camera whose URL only comes from an unset env var
        monkeypatch.delenv("FRONT_DOOR_URL", raising=False)
        data = _minimal_config(tmp_path)
        data["cameras"] = [{"name": "front_door", "url_env": "FRONT_DOOR_URL"}]
        config_path = _write_config(tmp_path, data)

        # When/Then: Validation fails naming the variable
        with pytest.raises(SystemExit) as exc_info:
            MjpegRec().validate(str(config_path))
        assert exc_info.value.code == 1
        assert "FRONT_DOOR_URL" in capsys.readouterr().err

    def test_validate_unknown_storage_backend_exits(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        data = _minimal_config(tmp_path)
        data["storage"] = {"backend": "s3"}
        config_path = _write_config(tmp_path, data)

        with pytest.raises(SystemExit) as exc_info:
            MjpegRec().validate(str(config_path))

        assert exc_info.value.code == 1
        assert "Unknown storage backend" in capsys.readouterr().err


class TestMjpegRecRun:
    """Tests for run command."""

    def test_run_config_error_exits(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Exits with error when Application raises ConfigError."""
        # Given: Application that raises ConfigError
        config_path = _write_config(tmp_path, _minimal_config(tmp_path))
        mock_app = MagicMock()
        mock_app.run = AsyncMock(side_effect=ConfigError("Test error"))

        with (
            patch("mjpegrec.cli.setup_logging"),
            patch("mjpegrec.cli.Application", return_value=mock_app),
        ):
            # When/Then: Running raises SystemExit
            with pytest.raises(SystemExit) as exc_info:
                MjpegRec().run(str(config_path))

        # Then: Exit code is 1 and error is printed
        assert exc_info.value.code == 1
        captured = capsys.readouterr()
        assert "✗ Config invalid" in captured.err
        assert "Test error" in captured.err

    def test_run_keyboard_interrupt_handled(self, tmp_path: Path) -> None:
        """Handles KeyboardInterrupt gracefully."""
        config_path = _write_config(tmp_path, _minimal_config(tmp_path))
        mock_app = MagicMock()
        mock_app.run = AsyncMock(side_effect=KeyboardInterrupt())

        with (
            patch("mjpegrec.cli.setup_logging"),
            patch("mjpegrec.cli.Application", return_value=mock_app),
        ):
            MjpegRec().run(str(config_path))  # Should not raise

    def test_run_uses_custom_log_level(self, tmp_path: Path) -> None:
        # Given: A config file
        config_path = _write_config(tmp_path, _minimal_config(tmp_path))
        mock_app = MagicMock()
        mock_app.run = AsyncMock(side_effect=KeyboardInterrupt())

        with (
            patch("mjpegrec.cli.setup_logging") as mock_setup,
            patch("mjpegrec.cli.Application", return_value=mock_app) as mock_cls,
        ):
            # When: Running with DEBUG level
            MjpegRec().run(str(config_path), log_level="DEBUG")

        # Then: setup_logging called with DEBUG and the app gets the path
        mock_setup.assert_called_once_with("DEBUG")
        mock_cls.assert_called_once_with(config_path)
