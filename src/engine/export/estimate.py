"""
どこで: `engine.export.estimate`。
何を: エクスポート前に出力サイズ（バイト）を見積もる `estimate` と、表示用の `format_size`。
なぜ: UI が設定変更のたびに安価に概算を出すため（実エンコードはしない）。

係数は `SizeHeuristics` にまとめた差し替え可能な表。値は経験的な目安で、精度は保証しない。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from engine.animation import AnimationStyle

from .settings import EncoderSettings, GifSettings, Quality, Resolution, VideoSettings

SCROLL_FRAMES = 11


def estimated_frame_count(style: AnimationStyle | str | None, unit_count: int) -> int:
    """見積もり用のフレーム数モデル（件数のみから決まる）。

    none=1, reveal=n+3, typing=5n+2, scroll=11。
    """
    n = max(0, int(unit_count))
    style = AnimationStyle.coerce(style)
    if style is AnimationStyle.REVEAL:
        return n + 3
    if style is AnimationStyle.TYPING:
        return 5 * n + 2
    if style is AnimationStyle.SCROLL:
        return SCROLL_FRAMES
    return 1


def _gif_quality() -> dict[Quality, float]:
    return {Quality.LOW: 0.6, Quality.MEDIUM: 1.0, Quality.HIGH: 1.5}


def _video_resolution() -> dict[Resolution, float]:
    return {Resolution.HD_720: 1.0, Resolution.FHD_1080: 2.0, Resolution.UHD_4K: 4.0}


@dataclass(frozen=True)
class SizeHeuristics:
    """見積もり係数表。

    - GIF: 1 フレーム `gif_kib_per_frame` KiB（幅 `gif_reference_width` 基準、幅に比例）× 品質係数。
    - 動画: `video_kib_per_second` KiB/s（`video_reference_fps` 基準）× 解像度係数 × フレーム数/基準 fps。
    """

    gif_kib_per_frame: float = 30.0
    gif_reference_width: int = 400
    gif_quality_multiplier: Mapping[Quality, float] = field(default_factory=_gif_quality)
    video_kib_per_second: float = 2000.0
    video_reference_fps: int = 30
    video_resolution_multiplier: Mapping[Resolution, float] = field(
        default_factory=_video_resolution
    )


DEFAULT_HEURISTICS = SizeHeuristics()


def estimate(
    unit_count: int,
    style: AnimationStyle | str | None,
    settings: EncoderSettings,
    heuristics: SizeHeuristics = DEFAULT_HEURISTICS,
) -> int:
    """推定サイズ [byte] を返す（0 以上の整数）。

    GIF は `estimated_frame_count`、動画は `fps × duration_s` のフレーム予算で見積もる。
    """
    n_units = max(0, int(unit_count))
    if isinstance(settings, GifSettings):
        frames = estimated_frame_count(style, n_units)
        per_frame_kib = (
            heuristics.gif_kib_per_frame
            * heuristics.gif_quality_multiplier[settings.quality]
            * (settings.width / float(heuristics.gif_reference_width))
        )
    elif isinstance(settings, VideoSettings):
        frames = settings.frame_budget
        per_frame_kib = (
            heuristics.video_kib_per_second
            / float(heuristics.video_reference_fps)
            * heuristics.video_resolution_multiplier[settings.resolution]
        )
    else:
        raise TypeError(f"unsupported settings type: {type(settings).__name__}")
    return max(0, int(round(frames * per_frame_kib * 1024)))


def format_size(size_bytes: int) -> str:
    """`~123 KB` / `~1.2 MB` 形式の概算表記。"""
    kib = max(0, int(size_bytes)) / 1024.0
    if kib >= 1024.0:
        return f"~{kib / 1024.0:.1f} MB"
    return f"~{int(round(kib))} KB"


__all__ = [
    "SizeHeuristics",
    "DEFAULT_HEURISTICS",
    "estimated_frame_count",
    "estimate",
    "format_size",
]
