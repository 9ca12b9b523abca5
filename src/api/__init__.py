"""
どこで: `api` 入口（高レベル公開 API）。
何を: エクスポートラン・設定・見積もり・バックグラウンドサービスなどを再輸出。
なぜ: ホストアプリが単一名前空間から「見積もり → 実行 → 成果物の受け取り」まで完結できるようにするため。

Usage:
    from api import ContentUnit, GifSettings, export_animation

    units = [ContentUnit("m1", 0, "Hello"), ContentUnit("m2", 1, "Hi!")]
    artifact = export_animation(renderer, units, "reveal", GifSettings(quality="high"))
    Path(artifact.suggested_filename).write_bytes(artifact.data)
"""

from common.logging import setup_default_logging
from engine.animation import AnimationStyle, ContentUnit, FrameMutation, PartialText, plan
from engine.capture import CapturePolicy, Renderer
from engine.errors import (
    CaptureFailed,
    EncodingFailed,
    EncodingTimedOut,
    ExportError,
    RunCancelled,
    UnsupportedFormat,
)
from engine.export.artifact import EncodedArtifact
from engine.export.estimate import SizeHeuristics, format_size
from engine.export.pool import shutdown_default_pool
from engine.export.service import ExportBusy, ExportService, JobProgress
from engine.export.settings import Container, GifSettings, Quality, Resolution, VideoSettings
from engine.export.video import is_video_encoding_supported
from engine.progress import ErrorEvent, ProgressEvent

from .export import (
    ExportRun,
    default_settings,
    estimate_size,
    export_animation,
    submit_export,
)

__all__ = [
    # 実行
    "ExportRun",
    "export_animation",
    "submit_export",
    "ExportService",
    "ExportBusy",
    "JobProgress",
    "shutdown_default_pool",
    "setup_default_logging",
    # 入力
    "AnimationStyle",
    "ContentUnit",
    "FrameMutation",
    "PartialText",
    "Renderer",
    "CapturePolicy",
    "plan",
    # 設定
    "GifSettings",
    "VideoSettings",
    "Quality",
    "Resolution",
    "Container",
    "default_settings",
    # 見積もり
    "estimate_size",
    "format_size",
    "SizeHeuristics",
    "is_video_encoding_supported",
    # 出力/イベント
    "EncodedArtifact",
    "ProgressEvent",
    "ErrorEvent",
    # 例外
    "ExportError",
    "CaptureFailed",
    "UnsupportedFormat",
    "EncodingFailed",
    "EncodingTimedOut",
    "RunCancelled",
]

# バージョン情報
__version__ = "2026.10"
