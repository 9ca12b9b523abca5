"""
どこで: `engine.errors`。
何を: キャプチャ/エンコードの失敗分類（致命/回復可能/キャンセル）を例外と記録型で定義する。
なぜ: 呼び出し側がフレーム番号やコーデック名などの文脈付きで失敗を扱えるようにするため。

分類:
- `CaptureFailed`        : 先頭フレームのキャプチャ失敗（致命）。
- `PartialCaptureSkipped`: 2 枚目以降のキャプチャ失敗（回復済み、記録のみ。例外ではない）。
- `UnsupportedFormat`    : 要求コンテナ/コーデックがホストで利用不可（致命、代替しない）。
- `EncodingFailed`       : コーデック層の失敗（致命）。
- `EncodingTimedOut`     : 実時間ペーシングの予算超過（致命）。
- `RunCancelled`         : 協調キャンセル。成功とは区別するが `ExportError` ではない。
"""

from __future__ import annotations

from dataclasses import dataclass


class ExportError(Exception):
    """エクスポート処理の致命的失敗の基底クラス。"""


class CaptureFailed(ExportError):
    """キャプチャの致命的失敗。`frame_index` に失敗したフレーム番号を保持する。"""

    def __init__(
        self,
        frame_index: int | None = None,
        original: BaseException | None = None,
        message: str | None = None,
    ) -> None:
        if message is None:
            message = f"capture failed at frame {frame_index}: {original}"
        super().__init__(message)
        self.frame_index = frame_index
        self.original = original


@dataclass(frozen=True)
class PartialCaptureSkipped:
    """スキップしたフレームの記録（ランのサマリに集約される）。"""

    frame_index: int
    reason: str


class UnsupportedFormat(ExportError):
    """要求されたコンテナ/コーデックが利用できない。"""

    def __init__(self, container: str, codec: str, detail: str | None = None) -> None:
        message = f"video format {container}/{codec} is not supported on this host"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.container = container
        self.codec = codec


class EncodingFailed(ExportError):
    """エンコーダ内部の失敗。"""

    def __init__(
        self,
        codec: str,
        original: BaseException | None = None,
        message: str | None = None,
    ) -> None:
        if message is None:
            message = f"{codec} encoding failed: {original}"
        super().__init__(message)
        self.codec = codec
        self.original = original


class EncodingTimedOut(ExportError):
    """実時間ペーシングの壁時計予算を超過した。"""

    def __init__(self, elapsed_s: float, budget_s: float) -> None:
        super().__init__(
            f"video encoding exceeded its time budget ({elapsed_s:.2f}s > {budget_s:.2f}s)"
        )
        self.elapsed_s = elapsed_s
        self.budget_s = budget_s


class RunCancelled(Exception):
    """協調キャンセルで中断されたラン（部分結果は破棄済み）。"""

    def __init__(self, stage: str = "capture", frame_index: int | None = None) -> None:
        super().__init__(f"run cancelled during {stage} (frame {frame_index})")
        self.stage = stage
        self.frame_index = frame_index


__all__ = [
    "ExportError",
    "CaptureFailed",
    "PartialCaptureSkipped",
    "UnsupportedFormat",
    "EncodingFailed",
    "EncodingTimedOut",
    "RunCancelled",
]
