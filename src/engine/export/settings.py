"""
どこで: `engine.export.settings`。
何を: エンコーダ設定のタグ付き共用体（`GifSettings` | `VideoSettings`）と品質/解像度の対応表。
なぜ: UI 由来の文字列設定を型付きで受け取り、エンコーダ内部の数値パラメータへ一箇所で写像するため。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Union


class Quality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Resolution(str, Enum):
    HD_720 = "720p"
    FHD_1080 = "1080p"
    UHD_4K = "4k"


class Container(str, Enum):
    WEBM = "webm"
    MP4 = "mp4"


@dataclass(frozen=True)
class QualityProfile:
    """品質段階 → (パレット色数, ディザ, 並列度)。"""

    palette_size: int
    dither: bool
    workers: int


QUALITY_PROFILES: dict[Quality, QualityProfile] = {
    Quality.LOW: QualityProfile(palette_size=64, dither=False, workers=2),
    Quality.MEDIUM: QualityProfile(palette_size=128, dither=False, workers=4),
    Quality.HIGH: QualityProfile(palette_size=256, dither=True, workers=4),
}

RESOLUTION_DIMENSIONS: dict[Resolution, tuple[int, int]] = {
    Resolution.HD_720: (1280, 720),
    Resolution.FHD_1080: (1920, 1080),
    Resolution.UHD_4K: (3840, 2160),
}

# コンテナ既定のコーデック（ffmpeg エンコーダ名）
DEFAULT_CODECS: dict[Container, str] = {
    Container.WEBM: "libvpx-vp9",
    Container.MP4: "libx264",
}

MEDIA_TYPES: dict[Container, str] = {
    Container.WEBM: "video/webm",
    Container.MP4: "video/mp4",
}


@dataclass(frozen=True)
class GifSettings:
    """画像シーケンス（GIF）設定。

    属性:
        quality: 品質段階。パレット色数/ディザ/並列度を決める。
        dither: None なら品質段階の既定、bool 指定で上書き。
        loop: True で無限ループ、False で 1 回再生。
        frame_delay_ms: 1 フレームの表示時間 [ms]（最終フレームは 2 倍）。
        width: キャプチャ幅 [px]。
    """

    kind: ClassVar[str] = "gif"

    quality: Quality = Quality.MEDIUM
    dither: bool | None = None
    loop: bool = True
    frame_delay_ms: int = 500
    width: int = 400

    def __post_init__(self) -> None:
        object.__setattr__(self, "quality", Quality(self.quality))
        if int(self.frame_delay_ms) < 10:
            raise ValueError("frame_delay_ms は 10 以上である必要があります（GIF は 1/100 秒単位）")
        if int(self.width) < 1:
            raise ValueError("width は 1 以上である必要があります")

    def profile(self) -> QualityProfile:
        base = QUALITY_PROFILES[self.quality]
        if self.dither is None:
            return base
        return QualityProfile(base.palette_size, bool(self.dither), base.workers)


@dataclass(frozen=True)
class VideoSettings:
    """動画設定。

    属性:
        fps: フレームレート（24/30/60 を想定、1–120 を許容）。
        resolution: 解像度段階（明示の画素寸法に写像）。
        container: 出力コンテナ。
        codec: ffmpeg エンコーダ名。None でコンテナ既定。
        duration_s: 名目の長さ [s]。フレーム予算 = fps × duration_s。
        timeout_factor: 壁時計予算の係数。None で `common.settings` の既定（1.5）。
    """

    kind: ClassVar[str] = "video"

    fps: int = 30
    resolution: Resolution = Resolution.FHD_1080
    container: Container = Container.WEBM
    codec: str | None = None
    duration_s: float = 5.0
    timeout_factor: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "resolution", Resolution(self.resolution))
        object.__setattr__(self, "container", Container(self.container))
        if not 1 <= int(self.fps) <= 120:
            raise ValueError("fps は 1–120 の範囲で指定してください")
        if float(self.duration_s) <= 0:
            raise ValueError("duration_s は正である必要があります")
        if self.timeout_factor is not None and float(self.timeout_factor) < 1.0:
            raise ValueError("timeout_factor は 1.0 以上である必要があります")

    @property
    def dimensions(self) -> tuple[int, int]:
        return RESOLUTION_DIMENSIONS[self.resolution]

    @property
    def resolved_codec(self) -> str:
        return self.codec or DEFAULT_CODECS[self.container]

    @property
    def media_type(self) -> str:
        return MEDIA_TYPES[self.container]

    @property
    def frame_budget(self) -> int:
        return max(1, int(round(self.fps * self.duration_s)))


EncoderSettings = Union[GifSettings, VideoSettings]


__all__ = [
    "Quality",
    "Resolution",
    "Container",
    "QualityProfile",
    "QUALITY_PROFILES",
    "RESOLUTION_DIMENSIONS",
    "DEFAULT_CODECS",
    "MEDIA_TYPES",
    "GifSettings",
    "VideoSettings",
    "EncoderSettings",
]
