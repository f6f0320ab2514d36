"""End-to-end tests for one camera's pipeline."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from mjpegrec.camera.supervisor import CameraSupervisor
from mjpegrec.config import ConfigError
from mjpegrec.models.config import Config
from mjpegrec.models.frame import Frame
from mjpegrec.models.segment import Segment
from tests.mjpegrec.mocks import (
    FakeConnector,
    FakeEncoder,
    FakeLineSource,
    make_jpeg,
    multipart_chunk,
    wait_until,
)


def _stream(*values: int) -> FakeLineSource:
    data = b"".join(multipart_chunk(make_jpeg(v), date=f"t{i}") for i, v in enumerate(values))
    return FakeLineSource(data, hold_open=True, line_delay_s=0.003)


def _supervisor(
    config: Config, connector: FakeConnector, encoder: FakeEncoder, segments: list[Segment]
) -> CameraSupervisor:
    return CameraSupervisor(
        config.cameras[0],
        config,
        on_segment=segments.append,
        connector=connector,
        encoder=encoder,
    )


@pytest.mark.asyncio
async def test_distinct_frames_become_one_segment(
    config_factory: Callable[..., Config], fake_encoder: FakeEncoder
) -> None:
    """Frames flow reader -> filter -> queue -> encoder -> segment."""
    # Given: A camera streaming three distinct frames
    config = config_factory(filter={"fps": 1000})
    connector = FakeConnector([_stream(0, 128, 255)])
    segments: list[Segment] = []
    supervisor = _supervisor(config, connector, fake_encoder, segments)

    # When: Running until the frames are written, then rotating
    await supervisor.start()
    await wait_until(lambda: supervisor.session.frames_written == 3)
    assert supervisor.is_healthy() is True
    assert supervisor.request_stop() is True
    await wait_until(lambda: len(segments) == 1)
    await supervisor.shutdown()

    # Then: One segment holds the three encoded frames
    assert segments[0].camera_name == "front"
    assert segments[0].frames_written == 3
    assert supervisor.filter.stats.accepted == 3
    assert fake_encoder.processes[0].written[0].startswith(b"\x89PNG")
    assert connector.urls == ["http://camera.local/video.cgi"]


@pytest.mark.asyncio
async def test_identical_frames_are_written_once(
    config_factory: Callable[..., Config], fake_encoder: FakeEncoder
) -> None:
    # Given: A camera streaming the same picture five times
    config = config_factory(filter={"fps": 1000})
    connector = FakeConnector([_stream(90, 90, 90, 90, 90)])
    segments: list[Segment] = []
    supervisor = _supervisor(config, connector, fake_encoder, segments)

    # When: Running until every frame has been read, then shutting down
    await supervisor.start()
    await wait_until(lambda: supervisor.reader.frames_read == 5)
    await wait_until(lambda: supervisor.session.frames_written == 1)
    await supervisor.shutdown()

    # Then: Only the first frame reached the encoder and shutdown finalized it
    assert supervisor.filter.stats.dropped_similar == 4
    assert len(segments) == 1
    assert segments[0].frames_written == 1


@pytest.mark.asyncio
async def test_camera_url_from_env(
    config_factory: Callable[..., Config],
    fake_encoder: FakeEncoder,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    # Given: A camera whose URL comes from the environment
    monkeypatch.setenv("FRONT_URL", "http://env-camera.local/mjpg")
    config = config_factory(cameras=[{"name": "front", "url_env": "FRONT_URL"}])
    connector = FakeConnector([FakeLineSource(b"", hold_open=True)])

    # When: Starting the supervisor
    supervisor = _supervisor(config, connector, fake_encoder, [])
    await supervisor.start()
    await wait_until(lambda: len(connector.urls) == 1)
    await supervisor.shutdown()

    # Then: The env URL was dialled
    assert connector.urls == ["http://env-camera.local/mjpg"]


def test_missing_url_env_is_a_config_error(
    config_factory: Callable[..., Config],
    fake_encoder: FakeEncoder,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("MISSING_CAMERA_URL", raising=False)
    config = config_factory(cameras=[{"name": "front", "url_env": "MISSING_CAMERA_URL"}])

    with pytest.raises(ConfigError):
        _supervisor(config, FakeConnector([]), fake_encoder, [])


@pytest.mark.asyncio
async def test_frame_filtering_leaves_event_loop_responsive(
    config_factory: Callable[..., Config], fake_encoder: FakeEncoder
) -> None:
    """Decoding and encoding HD frames must not stall other cameras' tasks."""
    # Given: A supervisor and a task that ticks every millisecond
    config = config_factory(filter={"fps": 1000})
    supervisor = _supervisor(config, FakeConnector([]), fake_encoder, [])
    payloads = [make_jpeg(v, width=1920, height=1080) for v in (0, 80, 160, 240, 40, 200)]
    gaps: list[float] = []
    done = asyncio.Event()

    async def ticker() -> None:
        loop = asyncio.get_running_loop()
        last = loop.time()
        while not done.is_set():
            await asyncio.sleep(0.001)
            now = loop.time()
            gaps.append(now - last)
            last = now

    ticks = asyncio.create_task(ticker())

    # When: Handling the frames the way the reader does
    for payload in payloads:
        await supervisor._handle_frame(Frame(payload=payload))
    done.set()
    await ticks

    # Then: Every frame was filtered and the ticker kept running throughout
    assert supervisor.filter.stats.decoded == len(payloads)
    assert gaps
    assert max(gaps) < 0.1
