"""
どこで: `engine.capture.renderer`。
何を: キャプチャ処理が外部レンダラに要求する能力インターフェース `Renderer` を定義。
なぜ: 具体的な描画木（DOM 等）を直接いじらず、ヘッドレス描画/ネイティブ描画/テスト用フェイクを差し替え可能にするため。

契約:
- `apply_mutation` は同期的に表示面の状態を変える。各 FrameMutation は完全な状態記述であり、
  `visible_ids` 以外のユニットは非表示、`partial` 以外のユニットは全文表示として扱う。
- `capture_frame` は現在の状態を `target_width` 幅（縦横比維持）のビットマップにする。ブロックしてよい。
- `restore_original_state` はすべての変更を戻す。1 ランにつき必ず 1 回だけ呼ばれる。
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np

from engine.animation.types import FrameMutation


@runtime_checkable
class Renderer(Protocol):
    """表示面の変更・キャプチャ・復元を提供する外部レンダラ。"""

    def apply_mutation(self, mutation: FrameMutation) -> None:
        """次のキャプチャ前の表示状態を適用する。"""

    def capture_frame(self, target_width: int) -> np.ndarray:
        """現在の状態を H×W×3/4 (uint8) の配列として返す。"""

    def restore_original_state(self) -> None:
        """適用したすべての変更を元に戻す。"""


__all__ = ["Renderer"]
