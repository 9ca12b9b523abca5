from __future__ import annotations

import io
import threading
from typing import Iterator

import numpy as np
import pytest
from PIL import Image

from engine.capture import FrameBuffer
from engine.errors import EncodingFailed, RunCancelled
from engine.export.gif import GifEncoder, assemble, frame_data, quantize_frame, stream_header
from engine.export.pool import EncodePool
from engine.export.settings import GifSettings, QualityProfile
from engine.progress import ProgressEvent


@pytest.fixture()
def pool() -> Iterator[EncodePool]:
    with EncodePool(max_workers=4) as p:
        yield p


def _durations(im: Image.Image) -> list[int]:
    out = []
    for i in range(im.n_frames):
        im.seek(i)
        out.append(im.info["duration"])
    return out


@pytest.mark.smoke
def test_identical_frames_round_trip_with_loop(pool):
    frames = [np.full((20, 30, 3), 200, dtype=np.uint8)] * 4
    art = GifEncoder(pool).encode(FrameBuffer.from_arrays(frames), GifSettings(frame_delay_ms=500))

    assert art.media_type == "image/gif"
    assert art.suggested_filename.startswith("mockup-") and art.suggested_filename.endswith(".gif")
    im = Image.open(io.BytesIO(art.data))
    assert im.info.get("loop") == 0
    assert im.size == (30, 20)
    assert im.n_frames == 4
    assert _durations(im) == [500, 500, 500, 1000]
    im.seek(0)
    assert im.convert("RGB").getpixel((0, 0)) == (200, 200, 200)


def test_loop_disabled_plays_once(pool):
    frames = [np.zeros((8, 8, 3), dtype=np.uint8)] * 2
    art = GifEncoder(pool).encode(
        FrameBuffer.from_arrays(frames), GifSettings(loop=False, frame_delay_ms=120)
    )
    im = Image.open(io.BytesIO(art.data))
    assert "loop" not in im.info
    assert _durations(im) == [120, 240]


def test_single_frame_gets_doubled_delay(pool):
    art = GifEncoder(pool).encode(
        FrameBuffer.from_arrays([np.zeros((4, 4, 3), dtype=np.uint8)]), GifSettings()
    )
    im = Image.open(io.BytesIO(art.data))
    assert im.n_frames == 1
    assert im.info["duration"] == 1000


def test_noisy_frame_indices_survive_decoding(pool):
    rng = np.random.default_rng(7)
    noisy = rng.integers(0, 256, size=(96, 128, 3), dtype=np.uint8)
    buf = FrameBuffer.from_arrays([noisy, noisy[::-1].copy()])
    settings = GifSettings(quality="high", dither=False)
    art = GifEncoder(pool).encode(buf, settings)

    expected = np.asarray(quantize_frame(buf[0], settings.profile()))
    im = Image.open(io.BytesIO(art.data))
    assert im.mode == "P"
    np.testing.assert_array_equal(np.asarray(im), expected)

    im.seek(1)
    q1 = quantize_frame(buf[1], settings.profile())
    np.testing.assert_array_equal(np.asarray(im.convert("RGB")), np.asarray(q1.convert("RGB")))


def test_progress_has_at_least_ten_updates_and_ends_at_100(pool):
    events: list[ProgressEvent] = []
    frames = [np.full((6, 6, 3), v, dtype=np.uint8) for v in (0, 80, 160)]
    GifEncoder(pool).encode(FrameBuffer.from_arrays(frames), GifSettings(), events.append)
    percents = [e.percent for e in events]
    assert len(events) >= 10
    assert percents == sorted(percents)
    assert percents[-1] == 100 and percents.count(100) == 1
    assert all(b - a <= 10 + 1e-6 for a, b in zip(percents, percents[1:]))


def test_quality_tiers_and_dither_override():
    assert GifSettings(quality="low").profile() == QualityProfile(64, False, 2)
    assert GifSettings(quality="medium").profile() == QualityProfile(128, False, 4)
    assert GifSettings(quality="high").profile() == QualityProfile(256, True, 4)
    assert GifSettings(quality="high", dither=False).profile().dither is False
    assert GifSettings(quality="low", dither=True).profile() == QualityProfile(64, True, 2)


def test_palette_is_limited_by_quality(pool):
    rng = np.random.default_rng(1)
    frame = FrameBuffer.from_arrays([rng.integers(0, 256, (32, 32, 3), dtype=np.uint8)])[0]
    q = quantize_frame(frame, GifSettings(quality="low").profile())
    assert q.mode == "P"
    assert int(np.asarray(q).max()) < 64


def test_empty_buffer_fails(pool):
    with pytest.raises(EncodingFailed):
        GifEncoder(pool).encode(FrameBuffer(), GifSettings())


def test_cancel_during_encode(pool):
    cancel = threading.Event()
    cancel.set()
    events: list[ProgressEvent] = []
    frames = [np.zeros((4, 4, 3), dtype=np.uint8)] * 5
    with pytest.raises(RunCancelled):
        GifEncoder(pool).encode(
            FrameBuffer.from_arrays(frames), GifSettings(), events.append, cancel_event=cancel
        )
    assert all(e.percent < 100 for e in events)


def test_invalid_settings_rejected():
    with pytest.raises(ValueError):
        GifSettings(frame_delay_ms=5)
    with pytest.raises(ValueError):
        GifSettings(width=0)
    with pytest.raises(ValueError):
        GifSettings(quality="ultra")


def test_stream_header_loop_extension():
    looping = stream_header(4, 3, loop=True, delay_ms=100)
    once = stream_header(4, 3, loop=False, delay_ms=100)
    assert looping.startswith(b"GIF89a") and once.startswith(b"GIF89a")
    assert b"NETSCAPE2.0" in looping
    assert b"NETSCAPE2.0" not in once


def test_identical_frames_are_written_as_separate_blocks():
    frame = FrameBuffer.from_arrays([np.zeros((3, 5, 3), dtype=np.uint8)])[0]
    profile = GifSettings().profile()
    block = frame_data(quantize_frame(frame, profile), 100)
    data = assemble(5, 3, [block] * 3, loop=False, delay_ms=100)
    assert data.endswith(b";")
    im = Image.open(io.BytesIO(data))
    assert im.n_frames == 3
    assert _durations(im) == [100, 100, 100]
    with pytest.raises(ValueError):
        assemble(5, 3, [], loop=True, delay_ms=100)
