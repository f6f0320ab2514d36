"""Tests for configuration loading and validation."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import pytest
import yaml

from mjpegrec.config import (
    ConfigError,
    ConfigErrorCode,
    load_config,
    load_config_from_dict,
    resolve_camera_url,
    resolve_env_var,
)
from mjpegrec.models.config import MIN_ROTATION_S, CameraConfig
from mjpegrec.models.enums import ImageCodec


def minimal_config() -> dict[str, Any]:
    """Return minimal valid config dict."""
    return {
        "version": 1,
        "cameras": [{"name": "front", "url": "http://camera.local/video.cgi"}],
        "storage": {"backend": "local", "local": {"root": "./storage"}},
    }


def test_minimal_config_applies_defaults() -> None:
    # Given: The smallest valid config
    # When: Loading it
    config = load_config_from_dict(minimal_config())

    # Then: Every section has its documented default
    assert config.stream.reconnect_backoff_s == 1.0
    assert config.stream.max_attempts == 0
    assert config.filter.fps == 15
    assert config.filter.similarity_threshold == 1.05
    assert config.filter.image_codec is ImageCodec.PNG
    assert config.filter.label.enabled is False
    assert config.encoder.queue_size == 200
    assert config.encoder.nice == 10
    assert config.encoder.extension == ".avi"
    assert config.rotation.duration_s == 300
    assert config.storage.delete_after_upload is True


def test_load_config_from_yaml(tmp_path: Path) -> None:
    # Given: A YAML config file
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(minimal_config()))
    os.chmod(path, 0o600)

    # When: Loading it
    config = load_config(path)

    # Then: Cameras are parsed
    assert [camera.name for camera in config.cameras] == ["front"]


def test_missing_file_is_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError) as exc_info:
        load_config(tmp_path / "missing.yaml")

    assert exc_info.value.code is ConfigErrorCode.FILE_NOT_FOUND


@pytest.mark.parametrize(
    ("content", "code"),
    [
        ("cameras: [unclosed", ConfigErrorCode.YAML_INVALID),
        ("", ConfigErrorCode.EMPTY_FILE),
        ("- just\n- a list\n", ConfigErrorCode.ROOT_NOT_MAPPING),
        ("version: 1\n", ConfigErrorCode.VALIDATION_FAILED),
    ],
)
def test_bad_files_report_stable_codes(tmp_path: Path, content: str, code: ConfigErrorCode) -> None:
    # Given: A broken config file
    path = tmp_path / "config.yaml"
    path.write_text(content)

    # When / Then: Loading fails with the matching code
    with pytest.raises(ConfigError) as exc_info:
        load_config(path)
    assert exc_info.value.code is code


def test_permissive_file_mode_warns(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    # Given: A world-readable config file
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(minimal_config()))
    os.chmod(path, 0o644)

    # When: Loading it
    with caplog.at_level(logging.WARNING):
        load_config(path)

    # Then: A permissions warning is logged (POSIX only)
    if os.name == "posix":
        assert "too permissive" in caplog.text


def test_duplicate_camera_names_rejected() -> None:
    data = minimal_config()
    data["cameras"] = [
        {"name": "front", "url": "http://a"},
        {"name": "front", "url": "http://b"},
    ]

    with pytest.raises(ConfigError, match="duplicate camera name"):
        load_config_from_dict(data)


def test_camera_requires_url_or_env() -> None:
    data = minimal_config()
    data["cameras"] = [{"name": "front"}]

    with pytest.raises(ConfigError):
        load_config_from_dict(data)


def test_blank_camera_name_rejected() -> None:
    data = minimal_config()
    data["cameras"] = [{"name": "  ", "url": "http://a"}]

    with pytest.raises(ConfigError):
        load_config_from_dict(data)


def test_active_cameras_skips_inactive() -> None:
    data = minimal_config()
    data["cameras"] = [
        {"name": "front", "url": "http://a"},
        {"name": "back", "url": "http://b", "active": False},
    ]

    config = load_config_from_dict(data)

    assert [camera.name for camera in config.active_cameras()] == ["front"]


def test_rotation_below_floor_is_raised(caplog: pytest.LogCaptureFixture) -> None:
    # Given: A 5 second rotation
    data = minimal_config()
    data["rotation"] = {"duration_s": 5}

    # When: Loading it
    with caplog.at_level(logging.WARNING):
        config = load_config_from_dict(data)

    # Then: The floor applies and a warning is logged
    assert config.rotation.duration_s == MIN_ROTATION_S
    assert "minimum" in caplog.text


def test_image_codec_is_case_insensitive() -> None:
    data = minimal_config()
    data["filter"] = {"image_codec": "JPEG"}

    assert load_config_from_dict(data).filter.image_codec is ImageCodec.JPEG


def test_unsupported_image_codec_rejected() -> None:
    data = minimal_config()
    data["filter"] = {"image_codec": "gif"}

    with pytest.raises(ConfigError) as exc_info:
        load_config_from_dict(data)
    assert exc_info.value.code is ConfigErrorCode.VALIDATION_FAILED


@pytest.mark.parametrize("command", ["ffmpeg -i - out.avi", "ffmpeg -i - {out} {output}"])
def test_encoder_command_needs_output_placeholder(command: str) -> None:
    data = minimal_config()
    data["encoder"] = {"command": command}

    with pytest.raises(ConfigError):
        load_config_from_dict(data)


def test_encoder_extension_gets_leading_dot() -> None:
    data = minimal_config()
    data["encoder"] = {"extension": "mkv"}

    assert load_config_from_dict(data).encoder.extension == ".mkv"


def test_enabled_storage_requires_backend_section() -> None:
    data = minimal_config()
    data["storage"] = {"backend": "dropbox"}

    with pytest.raises(ConfigError, match="storage.dropbox is required"):
        load_config_from_dict(data)


def test_disabled_storage_needs_no_backend_section() -> None:
    data = minimal_config()
    data["storage"] = {"enabled": False, "backend": "dropbox"}

    assert load_config_from_dict(data).storage.enabled is False


def test_unknown_keys_rejected() -> None:
    data = minimal_config()
    data["stream"] = {"reconnect_backof_s": 2}

    with pytest.raises(ConfigError):
        load_config_from_dict(data)


def test_resolve_env_var(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MJPEGREC_TEST_VAR", "value")
    monkeypatch.delenv("MJPEGREC_MISSING_VAR", raising=False)

    assert resolve_env_var("MJPEGREC_TEST_VAR") == "value"
    assert resolve_env_var("MJPEGREC_MISSING_VAR", required=False) is None
    with pytest.raises(ConfigError) as exc_info:
        resolve_env_var("MJPEGREC_MISSING_VAR")
    assert exc_info.value.code is ConfigErrorCode.ENV_VAR_MISSING


def test_resolve_camera_url_prefers_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FRONT_URL", "http://from-env")
    camera = CameraConfig(name="front", url="http://from-config", url_env="FRONT_URL")

    assert resolve_camera_url(camera) == "http://from-env"


def test_resolve_camera_url_falls_back_to_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("FRONT_URL", raising=False)
    camera = CameraConfig(name="front", url="http://from-config", url_env="FRONT_URL")

    assert resolve_camera_url(camera) == "http://from-config"


def test_config_is_immutable() -> None:
    config = load_config_from_dict(minimal_config())

    with pytest.raises(Exception):
        config.filter.fps = 1  # type: ignore[misc]
