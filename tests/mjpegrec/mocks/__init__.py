"""Test doubles for mjpegrec components."""

from tests.mjpegrec.mocks.clock import FakeClock
from tests.mjpegrec.mocks.config import base_config_dict
from tests.mjpegrec.mocks.encoder import FakeEncoder, FakeProcess
from tests.mjpegrec.mocks.images import make_image, make_jpeg, multipart_chunk
from tests.mjpegrec.mocks.storage import MockStorage
from tests.mjpegrec.mocks.stream import FakeConnector, FakeLineSource
from tests.mjpegrec.mocks.waiting import wait_until

__all__ = [
    "FakeClock",
    "FakeConnector",
    "FakeEncoder",
    "FakeLineSource",
    "FakeProcess",
    "MockStorage",
    "base_config_dict",
    "make_image",
    "make_jpeg",
    "multipart_chunk",
    "wait_until",
]
