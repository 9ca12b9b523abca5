"""
どこで: `engine.capture.frame`。
何を: キャプチャ結果のビットマップ `RasterFrame` と、1 ラン分の順序付き集合 `FrameBuffer`。
なぜ: 「生成後は不変」「同一ラン内は同一寸法」をデータ型の側で保証するため。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import numpy as np

from engine.errors import PartialCaptureSkipped


@dataclass(frozen=True)
class RasterFrame:
    """所有ビットマップ（H×W×C, uint8, C は 3 か 4）とフレーム番号。"""

    index: int
    pixels: np.ndarray

    @classmethod
    def from_array(cls, index: int, pixels: object) -> "RasterFrame":
        """配列を検証・複製して読み取り専用の RasterFrame を作る。"""
        arr = np.asarray(pixels)
        if arr.ndim == 2:
            arr = np.repeat(arr[:, :, None], 3, axis=2)
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise ValueError(f"frame must be HxWx3 or HxWx4, got shape {arr.shape}")
        if arr.shape[0] < 1 or arr.shape[1] < 1:
            raise ValueError(f"frame has empty dimensions: {arr.shape}")
        if arr.dtype != np.uint8:
            arr = np.clip(arr, 0, 255).astype(np.uint8)
        owned = np.array(arr, dtype=np.uint8, copy=True, order="C")
        owned.setflags(write=False)
        return cls(index=int(index), pixels=owned)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def rgb(self, background: tuple[int, int, int] = (255, 255, 255)) -> np.ndarray:
        """RGB 配列を返す（アルファは背景色へ合成）。"""
        if self.pixels.shape[2] == 3:
            return self.pixels
        rgb = self.pixels[..., :3].astype(np.float32)
        alpha = self.pixels[..., 3:4].astype(np.float32) / 255.0
        bg = np.asarray(background, dtype=np.float32).reshape(1, 1, 3)
        out = rgb * alpha + bg * (1.0 - alpha)
        return np.clip(np.rint(out), 0, 255).astype(np.uint8)


class FrameBuffer:
    """1 ラン分の RasterFrame 列（全フレーム同一寸法）とスキップ記録。"""

    def __init__(self) -> None:
        self._frames: list[RasterFrame] = []
        self.skipped: list[PartialCaptureSkipped] = []

    def append(self, frame: RasterFrame) -> None:
        if self._frames and frame.size != self._frames[0].size:
            raise ValueError(
                f"frame {frame.index} is {frame.width}x{frame.height}, "
                f"buffer is {self.width}x{self.height}"
            )
        self._frames.append(frame)

    def record_skip(self, frame_index: int, reason: str) -> PartialCaptureSkipped:
        rec = PartialCaptureSkipped(frame_index=frame_index, reason=reason)
        self.skipped.append(rec)
        return rec

    def __len__(self) -> int:
        return len(self._frames)

    def __iter__(self) -> Iterator[RasterFrame]:
        return iter(self._frames)

    def __getitem__(self, i: int) -> RasterFrame:
        return self._frames[i]

    @property
    def frames(self) -> tuple[RasterFrame, ...]:
        return tuple(self._frames)

    @property
    def is_empty(self) -> bool:
        return not self._frames

    @property
    def width(self) -> int:
        return self._frames[0].width if self._frames else 0

    @property
    def height(self) -> int:
        return self._frames[0].height if self._frames else 0

    def clear(self) -> None:
        """フレームを破棄する（失敗/キャンセル時）。"""
        self._frames.clear()

    @classmethod
    def from_arrays(cls, arrays: "list[np.ndarray]") -> "FrameBuffer":
        """配列列から FrameBuffer を作る（エンコーダ単体利用・テスト向け）。"""
        buf = cls()
        for i, arr in enumerate(arrays):
            buf.append(RasterFrame.from_array(i, arr))
        return buf


__all__ = ["RasterFrame", "FrameBuffer"]
