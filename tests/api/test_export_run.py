from __future__ import annotations

import io
import threading
from typing import Iterator

import pytest
from PIL import Image

from api import (
    CaptureFailed,
    ErrorEvent,
    ExportRun,
    ExportService,
    GifSettings,
    ProgressEvent,
    Quality,
    RunCancelled,
    UnsupportedFormat,
    VideoSettings,
    default_settings,
    estimate_size,
    export_animation,
    submit_export,
)
from engine.export.gif import GifEncoder
from engine.export.pool import EncodePool
from engine.export.video import VideoEncoder, is_video_encoding_supported
from tests._utils.fakes import ALL_FORMATS, NO_FORMATS, FakeRenderer, SinkRecorder
from tests._utils.media import read_video_stats


@pytest.fixture()
def gif_encoder() -> Iterator[GifEncoder]:
    with EncodePool(max_workers=2) as pool:
        yield GifEncoder(pool)


@pytest.mark.smoke
def test_gif_export_end_to_end(units3, renderer, gif_encoder):
    events: list[ProgressEvent] = []
    completed = []
    run = ExportRun(
        renderer,
        units3,
        "reveal",
        GifSettings(width=40),
        gif_encoder=gif_encoder,
        on_progress=events.append,
        on_complete=completed.append,
    )
    art = run.execute()

    assert completed == [art]
    assert renderer.restore_calls == 1
    assert len(renderer.applied) == 5
    im = Image.open(io.BytesIO(art.data))
    assert im.size == (40, 20)
    assert im.n_frames == 5
    percents = [e.percent for e in events]
    assert percents == sorted(percents)
    assert percents[-1] == 100 and percents.count(100) == 1
    assert any(e.percent == 80 for e in events)
    # ラン内状態は破棄済み
    assert run._plan is None and run._buffer is None


def test_capture_failure_emits_error_event(units3, gif_encoder):
    r = FakeRenderer(fail_on={0})
    errors: list[ErrorEvent] = []
    events: list[ProgressEvent] = []
    completed = []
    with pytest.raises(CaptureFailed):
        export_animation(
            r,
            units3,
            "typing",
            GifSettings(width=20),
            gif_encoder=gif_encoder,
            on_progress=events.append,
            on_error=errors.append,
            on_complete=completed.append,
        )
    assert len(errors) == 1
    assert isinstance(errors[0].error, CaptureFailed)
    assert errors[0].percent < 100
    assert all(e.percent < 100 for e in events)
    assert completed == []
    assert r.restore_calls == 1


def test_unsupported_video_format_is_reported(units3, renderer):
    errors: list[ErrorEvent] = []
    rec = SinkRecorder()
    enc = VideoEncoder(sink_factory=rec, capability_probe=NO_FORMATS)
    settings = VideoSettings(fps=2, duration_s=1, resolution="720p")
    with pytest.raises(UnsupportedFormat):
        export_animation(renderer, units3, "reveal", settings, video_encoder=enc, on_error=errors.append)
    assert rec.sinks == []
    assert isinstance(errors[0].error, UnsupportedFormat)
    # 取り込み前に失敗するのでレンダラには触れない
    assert renderer.applied == [] and renderer.captures == 0
    assert renderer.restore_calls == 0


def test_video_export_with_fake_sink(units3, renderer):
    rec = SinkRecorder()
    enc = VideoEncoder(sink_factory=rec, capability_probe=ALL_FORMATS)
    settings = VideoSettings(fps=10, duration_s=0.5, resolution="720p", timeout_factor=10.0)
    run = ExportRun(renderer, units3, "scroll", settings, video_encoder=enc)
    assert run.frame_budget == 5
    assert run.target_width == 1280
    art = run.execute()
    assert art.media_type == "video/webm"
    assert len(rec.sinks[0].frames) == 5
    assert [round(m.scroll_fraction, 3) for m in renderer.applied][-1] == 1.0


def test_cancellation_is_not_an_error(units3, gif_encoder):
    errors: list[ErrorEvent] = []
    cancel = threading.Event()

    def _cancel(m) -> None:
        if m.index == 1:
            cancel.set()

    r = FakeRenderer(on_capture=_cancel)
    run = ExportRun(
        r,
        units3,
        "reveal",
        GifSettings(width=20),
        gif_encoder=gif_encoder,
        on_error=errors.append,
        cancel_event=cancel,
    )
    with pytest.raises(RunCancelled):
        run.execute()
    assert errors == []
    assert r.restore_calls == 1


def test_run_executes_only_once(units3, renderer, gif_encoder):
    run = ExportRun(renderer, units3, "none", GifSettings(width=10), gif_encoder=gif_encoder)
    run.execute()
    with pytest.raises(RuntimeError):
        run.execute()


def test_settings_type_checked(units3, renderer):
    with pytest.raises(TypeError):
        ExportRun(renderer, units3, "none", {"quality": "high"})  # type: ignore[arg-type]


def test_submit_export_through_service(units3, gif_encoder):
    r = FakeRenderer()
    with ExportService(workers=1) as svc:
        job = submit_export(svc, r, units3, "reveal", GifSettings(width=20), gif_encoder=gif_encoder)
        pr = svc.wait(job, timeout=10)
    assert pr.state == "completed"
    assert pr.artifact is not None and pr.artifact.media_type == "image/gif"
    assert r.restore_calls == 1


def test_submit_export_rejects_external_cancel_event(units3, renderer):
    with ExportService(workers=1) as svc:
        with pytest.raises(TypeError):
            submit_export(
                svc, renderer, units3, "none", GifSettings(), cancel_event=threading.Event()
            )


def test_estimate_size_returns_bytes_and_label():
    size, label = estimate_size(5, "reveal", GifSettings())
    assert size == 8 * 30 * 1024
    assert label == "~240 KB"


def test_default_settings_from_config():
    gif = default_settings("gif", {"gif": {"quality": "high", "width": 320, "unknown": 1}})
    assert isinstance(gif, GifSettings)
    assert gif.quality is Quality.HIGH and gif.width == 320
    video = default_settings("video", {"video": {"fps": 24, "container": "mp4"}})
    assert isinstance(video, VideoSettings)
    assert video.fps == 24 and video.resolved_codec == "libx264"
    assert default_settings("gif", {}) == GifSettings()
    with pytest.raises(ValueError):
        default_settings("apng", {})


def test_default_settings_reads_bundled_yaml():
    assert default_settings("gif") == GifSettings()
    assert default_settings("video") == VideoSettings()


@pytest.mark.parametrize("style, units", [("none", 2), ("reveal", 0)])
def test_one_frame_plan_fills_requested_video_duration(style, units, units3):
    r = FakeRenderer()
    rec = SinkRecorder()
    enc = VideoEncoder(sink_factory=rec, capability_probe=ALL_FORMATS)
    settings = VideoSettings(fps=10, duration_s=0.5, resolution="720p")  # 既定係数
    art = export_animation(r, units3[:units], style, settings, video_encoder=enc)
    assert r.captures == 1
    assert len(rec.sinks[0].frames) == 5
    assert art.media_type == "video/webm"


@pytest.mark.integration
@pytest.mark.parametrize("style, units", [("none", 2), ("scroll", 0)])
def test_one_frame_plan_through_real_ffmpeg(style, units, units3, tmp_path):
    if not is_video_encoding_supported("webm"):
        pytest.skip("ffmpeg with libvpx-vp9/webm is not available")
    r = FakeRenderer()
    settings = VideoSettings(fps=10, duration_s=2.0, resolution="720p")
    art = export_animation(r, units3[:units], style, settings)
    duration, frames = read_video_stats(art, tmp_path)
    assert r.captures == 1
    assert frames == 20
    assert duration == pytest.approx(2.0, abs=0.2)


def test_default_gif_encoder_uses_shared_pool_until_shutdown(units3):
    import api
    from engine.export.pool import get_default_pool

    api.shutdown_default_pool()
    art = api.export_animation(FakeRenderer(), units3, "none", GifSettings(width=12))
    assert art.media_type == "image/gif"
    first = get_default_pool()
    assert get_default_pool() is first
    api.shutdown_default_pool()
    second = get_default_pool()
    assert second is not first
    api.shutdown_default_pool()
