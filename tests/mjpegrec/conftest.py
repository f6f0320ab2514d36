"""Shared pytest fixtures for mjpegrec tests."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

# Add src and the repo root to sys.path for imports
repo_root = Path(__file__).parent.parent.parent
for path in (repo_root / "src", repo_root):
    if str(path.resolve()) not in sys.path:
        sys.path.insert(0, str(path.resolve()))

import pytest

from mjpegrec.config import load_config_from_dict
from mjpegrec.models.config import Config
from tests.mjpegrec.mocks import FakeClock, FakeEncoder, MockStorage, base_config_dict


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., Config]:
    """Build a Config from the base dict with per-section overrides."""

    def _factory(**sections: Any) -> Config:
        data = base_config_dict(tmp_path)
        for key, value in sections.items():
            if isinstance(value, dict) and isinstance(data.get(key), dict):
                data[key] = {**data[key], **value}
            else:
                data[key] = value
        return load_config_from_dict(data)

    return _factory


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture
def mock_storage() -> MockStorage:
    return MockStorage()
