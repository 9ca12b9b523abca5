"""
どこで: `api.export`。
何を: 計画 → キャプチャ → エンコードを 1 ランとして実行する `ExportRun` と、その薄い関数ラッパ。
なぜ: ラン単位の状態（計画・フレームバッファ）を単一所有者に閉じ込め、ラン終了時に必ず破棄するため。
      モジュールレベルの「描画中」状態は持たない。

進捗の割り当て:
- キャプチャ 0–80%、エンコード 80–100%。100% は成功時のみ。
- 失敗は `on_error(ErrorEvent)` で通知した上で例外を送出する。キャンセルは `RunCancelled` のみ。
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Mapping, Optional, Sequence

from engine.animation import AnimationPlan, AnimationStyle, ContentUnit, natural_frame_count, plan
from engine.capture import DEFAULT_POLICY, CapturePolicy, FrameBuffer, Renderer, capture
from engine.errors import RunCancelled
from engine.export.artifact import EncodedArtifact
from engine.export.estimate import DEFAULT_HEURISTICS, SizeHeuristics, estimate, format_size
from engine.export.gif import GifEncoder
from engine.export.service import ExportService
from engine.export.settings import EncoderSettings, GifSettings, VideoSettings
from engine.export.video import VideoEncoder
from engine.progress import ErrorEvent, ProgressCallback, ProgressEvent, scale_progress
from util.utils import config_section, load_config

logger = logging.getLogger(__name__)

CAPTURE_SHARE = 80.0

ErrorCallback = Callable[[ErrorEvent], None]
CompleteCallback = Callable[[EncodedArtifact], None]


class ExportRun:
    """1 回のエクスポート（単一所有者）。

    Parameters
    ----------
    renderer : Renderer
        表示面の能力インターフェース。
    units : Sequence[ContentUnit]
        コンテンツ単位。
    style : AnimationStyle | str | None
        アニメーション様式。
    settings : EncoderSettings
        `GifSettings` か `VideoSettings`。
    policy : CapturePolicy
        キャプチャ失敗の扱い。
    gif_encoder, video_encoder : optional
        差し替え用のエンコーダ（テストや共有プールの注入）。
    on_progress, on_error, on_complete : optional
        進捗/失敗/完了のコールバック。
    cancel_event : threading.Event | None
        協調キャンセル。None なら内部で生成し `cancel()` で操作する。
    """

    def __init__(
        self,
        renderer: Renderer,
        units: Sequence[ContentUnit],
        style: AnimationStyle | str | None,
        settings: EncoderSettings,
        *,
        policy: CapturePolicy = DEFAULT_POLICY,
        gif_encoder: GifEncoder | None = None,
        video_encoder: VideoEncoder | None = None,
        on_progress: Optional[ProgressCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        if not isinstance(settings, (GifSettings, VideoSettings)):
            raise TypeError(f"unsupported settings type: {type(settings).__name__}")
        self.renderer = renderer
        self.units = tuple(units)
        self.style = AnimationStyle.coerce(style)
        self.settings = settings
        self.policy = policy
        self._gif_encoder = gif_encoder
        self._video_encoder = video_encoder
        self._on_progress = on_progress
        self._on_error = on_error
        self._on_complete = on_complete
        self.cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self._last_percent = 0.0
        self._started = False
        # ラン内でのみ生存する状態
        self._plan: AnimationPlan | None = None
        self._buffer: FrameBuffer | None = None

    @property
    def frame_budget(self) -> int:
        if isinstance(self.settings, VideoSettings):
            return self.settings.frame_budget
        return natural_frame_count(self.style, self.units)

    @property
    def target_width(self) -> int:
        if isinstance(self.settings, VideoSettings):
            return self.settings.dimensions[0]
        return int(self.settings.width)

    def cancel(self) -> None:
        self.cancel_event.set()

    def execute(self) -> EncodedArtifact:
        """ランを実行して成果物を返す。1 インスタンスにつき 1 回だけ呼べる。"""
        if self._started:
            raise RuntimeError("ExportRun は 1 回だけ実行できます")
        self._started = True
        kind = self.settings.kind
        logger.info(
            "export run started: kind=%s style=%s units=%d budget=%d",
            kind,
            self.style.value,
            len(self.units),
            self.frame_budget,
        )
        try:
            encoder = self._encoder()
            if isinstance(encoder, VideoEncoder):
                # 取り込みの前に形式を確認する
                encoder.check_supported(self.settings)  # type: ignore[arg-type]
            self._plan = plan(self.style, self.units, self.frame_budget)
            self._buffer = capture(
                self._plan,
                self.renderer,
                self.target_width,
                on_progress=scale_progress(self._emit, 0.0, CAPTURE_SHARE),
                cancel_event=self.cancel_event,
                policy=self.policy,
            )
            artifact = encoder.encode(
                self._buffer,
                self.settings,  # type: ignore[arg-type]
                scale_progress(self._emit, CAPTURE_SHARE, 100.0),
                cancel_event=self.cancel_event,
            )
        except RunCancelled:
            logger.info("export run cancelled")
            raise
        except Exception as e:
            self._fail(e)
            raise
        finally:
            self._plan = None
            self._buffer = None

        logger.info(
            "export run completed: %s (%d bytes)", artifact.suggested_filename, len(artifact.data)
        )
        if self._on_complete is not None:
            self._on_complete(artifact)
        return artifact

    def __call__(
        self, cancel_event: threading.Event, on_progress: ProgressCallback
    ) -> EncodedArtifact:
        """`ExportService.submit` 用のアダプタ（サービス側のキャンセル/進捗を結線して実行）。"""
        self.cancel_event = cancel_event
        user_cb = self._on_progress

        def _both(ev: ProgressEvent) -> None:
            on_progress(ev)
            if user_cb is not None:
                user_cb(ev)

        self._on_progress = _both
        return self.execute()

    # --- internals ---
    def _encoder(self) -> GifEncoder | VideoEncoder:
        if isinstance(self.settings, GifSettings):
            if self._gif_encoder is None:
                self._gif_encoder = GifEncoder()
            return self._gif_encoder
        if self._video_encoder is None:
            self._video_encoder = VideoEncoder()
        return self._video_encoder

    def _emit(self, ev: ProgressEvent) -> None:
        # 段をまたいでも単調非減少に保つ
        percent = max(self._last_percent, float(ev.percent))
        self._last_percent = percent
        if self._on_progress is not None:
            self._on_progress(ProgressEvent(percent, ev.status))

    def _fail(self, error: BaseException) -> None:
        logger.error("export run failed: %s", error)
        if self._on_error is not None:
            self._on_error(ErrorEvent(self._last_percent, f"Export failed: {error}", error))


def export_animation(
    renderer: Renderer,
    units: Sequence[ContentUnit],
    style: AnimationStyle | str | None,
    settings: EncoderSettings,
    **kwargs: Any,
) -> EncodedArtifact:
    """`ExportRun(...).execute()` の簡易形。"""
    return ExportRun(renderer, units, style, settings, **kwargs).execute()


def submit_export(
    service: ExportService,
    renderer: Renderer,
    units: Sequence[ContentUnit],
    style: AnimationStyle | str | None,
    settings: EncoderSettings,
    **kwargs: Any,
) -> str:
    """バックグラウンドサービスへランを投入し、`job_id` を返す。"""
    if "cancel_event" in kwargs:
        raise TypeError("cancel_event はサービスが管理します（cancel(job_id) を使用）")
    return service.submit(ExportRun(renderer, units, style, settings, **kwargs))


def estimate_size(
    unit_count: int,
    style: AnimationStyle | str | None,
    settings: EncoderSettings,
    heuristics: SizeHeuristics = DEFAULT_HEURISTICS,
) -> tuple[int, str]:
    """推定バイト数と表示用文字列（`~1.2 MB` 等）を返す。"""
    size = estimate(unit_count, style, settings, heuristics)
    return size, format_size(size)


def default_settings(kind: str, config: Mapping[str, Any] | None = None) -> EncoderSettings:
    """YAML 構成（`gif`/`video` セクション）から既定の設定を作る。

    未知のキーは無視する。構成が無い場合はデータクラスの既定値。
    """
    cfg = load_config() if config is None else config
    if kind == "gif":
        allowed = {"quality", "dither", "loop", "frame_delay_ms", "width"}
        opts = {k: v for k, v in config_section(cfg, "gif").items() if k in allowed}
        return GifSettings(**opts)
    if kind == "video":
        allowed = {"fps", "resolution", "container", "codec", "duration_s", "timeout_factor"}
        opts = {k: v for k, v in config_section(cfg, "video").items() if k in allowed}
        return VideoSettings(**opts)
    raise ValueError(f"unknown export kind: {kind!r} (expected 'gif' or 'video')")


__all__ = [
    "ExportRun",
    "export_animation",
    "submit_export",
    "estimate_size",
    "default_settings",
]
