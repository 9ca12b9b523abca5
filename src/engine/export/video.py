"""
どこで: `engine.export.video`。
何を: FrameBuffer を実時間ペーシングで ffmpeg（imageio 経由）へ流し込み、webm/mp4 のバイト列にする `VideoEncoder`。
なぜ: 記録系と同じく「1/fps 間隔でフレームを供給する」モデルで名目長どおりの動画を得つつ、
      ホスト能力の事前確認・壁時計予算・キャンセルで確実に終わらせるため。

方針:
- コンテナ/コーデックはエンコード開始前に ffmpeg の `-encoders`/`-muxers` で確認する。
  利用不可なら何も書き出さずに `UnsupportedFormat`（別形式への暗黙フォールバックはしない）。
- ペーシングスレッドが 1/fps 間隔で有界キューへフレームを入れ、エンコードループ（呼び出しスレッド）が
  キャンバスへ収めて sink へ渡す。sink は呼び出しスレッドだけが触る。
- 出力は常に `fps × duration_s` フレーム。取り込み数が少なければ各フレームを繰り返して保持する。
- 総所要時間が `timeout_factor × duration_s` を超えたら `EncodingTimedOut`。
- sink は差し替え可能（テストではフェイク、既定は imageio の FFMPEG writer + 一時ファイル）。
"""

from __future__ import annotations

import functools
import logging
import queue
import shutil
import subprocess
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

import imageio.v2 as iio
import imageio_ffmpeg
import numpy as np
from PIL import Image

from common import settings as _settings
from engine.capture.frame import FrameBuffer, RasterFrame
from engine.errors import (
    EncodingFailed,
    EncodingTimedOut,
    ExportError,
    RunCancelled,
    UnsupportedFormat,
)
from engine.progress import ProgressCallback, ProgressMeter

from .artifact import EncodedArtifact, suggested_filename
from .settings import Container, Resolution, VideoSettings

logger = logging.getLogger(__name__)

BACKGROUND = (255, 255, 255)
PUMP_QUEUE_SIZE = 4
_POLL_S = 0.05

# 目標ビットレート（ffmpeg 表記）
BITRATES: dict[Resolution, str] = {
    Resolution.HD_720: "2500k",
    Resolution.FHD_1080: "5000k",
    Resolution.UHD_4K: "8000k",
}

# 実時間に追従させるための速度優先オプション
_SPEED_PARAMS: dict[str, list[str]] = {
    "libvpx-vp9": ["-deadline", "realtime", "-cpu-used", "8", "-row-mt", "1"],
    "libvpx": ["-deadline", "realtime", "-cpu-used", "8"],
    "libx264": ["-preset", "ultrafast", "-movflags", "+faststart"],
}


def _even(v: int) -> int:
    return int(v) & ~1  # 最下位ビットを落として偶数へ


# ---- capability probe ----
@dataclass(frozen=True)
class FfmpegCapabilities:
    encoders: frozenset[str]
    muxers: frozenset[str]

    def supports(self, container: str, codec: str) -> bool:
        return container in self.muxers and codec in self.encoders


def _parse_listing(text: str) -> frozenset[str]:
    """`ffmpeg -encoders` / `-muxers` の一覧から名前を抜き出す（`--` 行以降）。"""
    names: set[str] = set()
    started = False
    for line in text.splitlines():
        stripped = line.strip()
        if not started:
            started = stripped.startswith("--")
            continue
        parts = stripped.split()
        if len(parts) >= 2:
            names.update(n for n in parts[1].split(",") if n)
    return frozenset(names)


@functools.lru_cache(maxsize=1)
def probe_ffmpeg_capabilities() -> FfmpegCapabilities:
    """同梱/環境の ffmpeg が持つエンコーダとマルチプレクサを列挙する（結果はキャッシュ）。"""
    try:
        exe = imageio_ffmpeg.get_ffmpeg_exe()
    except RuntimeError as e:
        logger.warning("ffmpeg executable not found: %s", e)
        return FfmpegCapabilities(frozenset(), frozenset())

    listings: list[frozenset[str]] = []
    for flag in ("-encoders", "-muxers"):
        try:
            proc = subprocess.run(
                [exe, "-hide_banner", flag],
                capture_output=True,
                text=True,
                timeout=15,
                check=True,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("ffmpeg %s probe failed: %s", flag, e)
            return FfmpegCapabilities(frozenset(), frozenset())
        listings.append(_parse_listing(proc.stdout))
    return FfmpegCapabilities(encoders=listings[0], muxers=listings[1])


def is_video_encoding_supported(
    container: Container | str = Container.WEBM,
    codec: str | None = None,
    *,
    probe: Callable[[], FfmpegCapabilities] = probe_ffmpeg_capabilities,
) -> bool:
    """コンテナ/コーデックの組がこのホストでエンコード可能か。"""
    c = Container(container)
    settings = VideoSettings(container=c, codec=codec)
    return probe().supports(c.value, settings.resolved_codec)


# ---- sinks ----
class VideoSink(Protocol):
    """エンコード先。呼び出しスレッドからのみ使われる。"""

    def append(self, frame: np.ndarray) -> None: ...

    def finish(self) -> bytes: ...

    def abort(self) -> None: ...


SinkFactory = Callable[[VideoSettings, tuple[int, int]], VideoSink]


class FfmpegSink:
    """imageio の FFMPEG writer で一時ファイルへ書き、確定時にバイト列として読み戻す。"""

    def __init__(self, settings: VideoSettings, size: tuple[int, int]) -> None:
        codec = settings.resolved_codec
        self._dir = Path(tempfile.mkdtemp(prefix="mockreel-"))
        self._path = self._dir / f"out.{settings.container.value}"
        try:
            self._writer = iio.get_writer(
                str(self._path),
                format="FFMPEG",
                mode="I",
                fps=int(settings.fps),
                codec=codec,
                bitrate=BITRATES[settings.resolution],
                pixelformat="yuv420p",
                macro_block_size=2,
                output_params=list(_SPEED_PARAMS.get(codec, [])),
                ffmpeg_log_level="error",
            )
        except Exception:
            self._cleanup()
            raise
        self._size = size

    def append(self, frame: np.ndarray) -> None:
        self._writer.append_data(frame)

    def finish(self) -> bytes:
        try:
            self._writer.close()
            return self._path.read_bytes()
        finally:
            self._cleanup()

    def abort(self) -> None:
        try:
            self._writer.close()
        except Exception as e:
            logger.debug("ffmpeg writer close on abort failed: %s", e)
        finally:
            self._cleanup()

    def _cleanup(self) -> None:
        shutil.rmtree(self._dir, ignore_errors=True)


def fit_frame(
    frame: RasterFrame, size: tuple[int, int], background: tuple[int, int, int] = BACKGROUND
) -> np.ndarray:
    """縦横比を保ったままキャンバス（size）に収め、余白を背景色で埋めた RGB 配列を返す。"""
    cw, ch = int(size[0]), int(size[1])
    rgb = frame.rgb(background)
    h, w = rgb.shape[:2]
    if (w, h) == (cw, ch):
        return np.ascontiguousarray(rgb)
    scale = min(cw / w, ch / h)
    nw = min(cw, max(1, int(round(w * scale))))
    nh = min(ch, max(1, int(round(h * scale))))
    img = Image.fromarray(np.ascontiguousarray(rgb)).resize((nw, nh), Image.Resampling.LANCZOS)
    canvas = Image.new("RGB", (cw, ch), background)
    canvas.paste(img, ((cw - nw) // 2, (ch - nh) // 2))
    return np.asarray(canvas, dtype=np.uint8)


def frame_schedule(captured: int, slots: int) -> list[int]:
    """`slots` 個の出力フレームそれぞれに割り当てる取り込み済みフレームの番号。

    取り込み数が少なければ各フレームを均等に繰り返して保持し、名目長（fps × duration_s）を満たす。
    """
    if captured < 1 or slots < 1:
        return []
    return [min(captured - 1, j * captured // slots) for j in range(slots)]


_END = object()


class VideoEncoder:
    """実時間ペーシングの動画エンコーダ。

    Parameters
    ----------
    sink_factory : SinkFactory | None
        `(settings, (width, height)) -> VideoSink`。None で `FfmpegSink`。
    capability_probe : Callable[[], FfmpegCapabilities] | None
        ホスト能力の取得関数。None で ffmpeg を実際に問い合わせる。
    """

    def __init__(
        self,
        *,
        sink_factory: SinkFactory | None = None,
        capability_probe: Callable[[], FfmpegCapabilities] | None = None,
    ) -> None:
        self._sink_factory: SinkFactory = sink_factory or FfmpegSink
        self._probe = capability_probe or probe_ffmpeg_capabilities

    def check_supported(self, settings: VideoSettings) -> None:
        """ホストがコンテナ/コーデックを扱えなければ `UnsupportedFormat`。"""
        container = settings.container.value
        codec = settings.resolved_codec
        if not self._probe().supports(container, codec):
            logger.error("video format %s/%s is not available on this host", container, codec)
            raise UnsupportedFormat(container, codec)

    def encode(
        self,
        buffer: FrameBuffer,
        settings: VideoSettings,
        on_progress: Optional[ProgressCallback] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> EncodedArtifact:
        meter = ProgressMeter(on_progress, max_step=10.0)
        container = settings.container.value
        codec = settings.resolved_codec

        self.check_supported(settings)
        if buffer is None or buffer.is_empty:
            raise EncodingFailed(codec, message="cannot encode an empty frame buffer")

        factor = settings.timeout_factor or _settings.get().VIDEO_TIMEOUT_FACTOR
        schedule = frame_schedule(len(buffer), settings.frame_budget)
        nominal_s = len(schedule) / float(settings.fps)
        budget_s = nominal_s * float(factor)
        size = (_even(settings.dimensions[0]), _even(settings.dimensions[1]))
        meter.report(0, "Initializing video encoder...")
        logger.debug(
            "video encode: %s/%s %dx%d fps=%d captured=%d frames=%d budget=%.2fs",
            container,
            codec,
            size[0],
            size[1],
            settings.fps,
            len(buffer),
            len(schedule),
            budget_s,
        )

        try:
            sink = self._sink_factory(settings, size)
        except Exception as e:
            raise EncodingFailed(codec, e) from e

        started = time.monotonic()
        try:
            self._pump(buffer, schedule, sink, settings, size, meter, started, budget_s, cancel_event)
            meter.report(92, "Finalizing video...")
            data = sink.finish()
        except (ExportError, RunCancelled):
            sink.abort()
            raise
        except Exception as e:
            sink.abort()
            logger.error("video encoding failed: %s", e)
            raise EncodingFailed(codec, e) from e

        elapsed = time.monotonic() - started
        if elapsed > budget_s:
            logger.error("video encoding took %.2fs (budget %.2fs)", elapsed, budget_s)
            raise EncodingTimedOut(elapsed, budget_s)
        if not data:
            raise EncodingFailed(codec, message=f"{codec} produced no output")

        logger.info(
            "video encoded: %d frames (%d captured), %d bytes in %.2fs (nominal %.2fs)",
            len(schedule),
            len(buffer),
            len(data),
            elapsed,
            nominal_s,
        )
        meter.complete("Complete!")
        return EncodedArtifact(
            data=data,
            media_type=settings.media_type,
            suggested_filename=suggested_filename(container),
        )

    def _pump(
        self,
        buffer: FrameBuffer,
        schedule: list[int],
        sink: VideoSink,
        settings: VideoSettings,
        size: tuple[int, int],
        meter: ProgressMeter,
        started: float,
        budget_s: float,
        cancel_event: Optional[threading.Event],
    ) -> None:
        q: "queue.Queue[object]" = queue.Queue(maxsize=PUMP_QUEUE_SIZE)
        stop = threading.Event()
        interval = 1.0 / float(settings.fps)
        deadline = started + budget_s
        total = len(schedule)

        def _put(item: object) -> bool:
            while not stop.is_set():
                try:
                    q.put(item, timeout=_POLL_S)
                    return True
                except queue.Full:
                    continue
            return False

        def _pace() -> None:
            due = time.monotonic()
            for idx in schedule:
                wait = due - time.monotonic()
                if wait > 0 and stop.wait(wait):
                    return
                if not _put(idx):
                    return
                due += interval
            _put(_END)

        pacer = threading.Thread(target=_pace, name="VideoPacer", daemon=True)
        pacer.start()
        fed = 0
        # 保持中のフレームは収め直さない
        fitted_idx = -1
        fitted: np.ndarray | None = None
        try:
            while True:
                now = time.monotonic()
                if now >= deadline:
                    raise EncodingTimedOut(now - started, budget_s)
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("video encoding cancelled after %d/%d frames", fed, total)
                    raise RunCancelled("encode", fed)
                try:
                    item = q.get(timeout=min(_POLL_S, deadline - now))
                except queue.Empty:
                    continue
                if item is _END:
                    return
                assert isinstance(item, int)
                if item != fitted_idx or fitted is None:
                    fitted = fit_frame(buffer[item], size)
                    fitted_idx = item
                sink.append(fitted)
                fed += 1
                meter.report(5.0 + 85.0 * fed / total, f"Encoding frame {fed}/{total}...")
        finally:
            stop.set()
            pacer.join(timeout=1.0)


__all__ = [
    "BITRATES",
    "FfmpegCapabilities",
    "FfmpegSink",
    "SinkFactory",
    "VideoEncoder",
    "VideoSink",
    "fit_frame",
    "frame_schedule",
    "is_video_encoding_supported",
    "probe_ffmpeg_capabilities",
]
