"""
どこで: `engine.capture.orchestrator`。
何を: AnimationPlan をレンダラへ順に適用してキャプチャし、`FrameBuffer` を返す。
      進捗通知・協調キャンセル・失敗回復（先頭フレーム致命/以降スキップ）を担う。
なぜ: 表示面はインプレースで変更されるため、変更とキャプチャを 1 ラン内で直列化し、
      どの終了経路でも表示面を必ず元に戻すため。

注意:
- 同一レンダラ（表示面）に対するランは同時に 1 つだけ。後続ランは前のランの終了を待つ。
- キャンセルはフレームループの各反復の先頭でのみ確認する（フレームの途中では止めない）。
- 先頭フレーム致命/以降スキップの非対称は `CapturePolicy` で明示的に切り替えられる。
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from engine.animation.types import AnimationPlan
from engine.errors import CaptureFailed, RunCancelled
from engine.progress import ProgressCallback, ProgressMeter

from .frame import FrameBuffer, RasterFrame
from .renderer import Renderer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapturePolicy:
    """キャプチャ失敗の扱い。

    属性:
        fatal_first_frame: True で先頭フレーム（index 0）の失敗を致命扱いにする。
        skip_failed_frames: True で（致命でない）失敗フレームを記録して飛ばす。
            False ならどのフレームの失敗も致命。
    """

    fatal_first_frame: bool = True
    skip_failed_frames: bool = True


DEFAULT_POLICY = CapturePolicy()

# 表示面ごとの排他（キーは id(renderer)。保持中はレンダラが生存しているので再利用されない）
_surface_cond = threading.Condition()
_busy_surfaces: set[int] = set()


@contextmanager
def _exclusive_surface(renderer: Renderer) -> Iterator[None]:
    key = id(renderer)
    with _surface_cond:
        while key in _busy_surfaces:
            _surface_cond.wait()
        _busy_surfaces.add(key)
    try:
        yield
    finally:
        with _surface_cond:
            _busy_surfaces.discard(key)
            _surface_cond.notify_all()


@contextmanager
def _restoring(renderer: Renderer) -> Iterator[None]:
    """終了経路に関係なく `restore_original_state` をちょうど 1 回呼ぶ。"""
    try:
        yield
    finally:
        try:
            renderer.restore_original_state()
        except Exception:
            # 復元失敗でランの結果（成功/失敗）を上書きしない
            logger.exception("restore_original_state failed")


def capture(
    plan: AnimationPlan,
    renderer: Renderer,
    target_width: int,
    *,
    on_progress: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
    policy: CapturePolicy = DEFAULT_POLICY,
) -> FrameBuffer:
    """計画どおりにキャプチャして FrameBuffer を返す。

    Parameters
    ----------
    plan : AnimationPlan
        フレーム毎の変更指示。
    renderer : Renderer
        外部レンダラ（能力インターフェース）。
    target_width : int
        キャプチャ幅 [px]。縦は縦横比維持でレンダラが決める。
    on_progress : Optional[ProgressCallback]
        進捗コールバック（単調非減少、成功時のみ 100）。
    cancel_event : Optional[threading.Event]
        セットされると次の反復でランを中断する。
    policy : CapturePolicy
        失敗時の扱い。

    Returns
    -------
    FrameBuffer
        1 枚以上のフレーム。スキップしたフレームは `buffer.skipped` に記録される。

    Raises
    ------
    CaptureFailed
        致命的なキャプチャ失敗（既定では先頭フレーム、または全フレーム失敗）。
    RunCancelled
        キャンセルを検出した。部分バッファは破棄済み。
    """
    if int(target_width) < 1:
        raise ValueError("target_width は 1 以上である必要があります")
    width = int(target_width)
    meter = ProgressMeter(on_progress)
    total = len(plan)
    buffer = FrameBuffer()

    try:
        with _exclusive_surface(renderer), _restoring(renderer):
            meter.report(0, "Capturing frames...")
            for i, mutation in enumerate(plan):
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("capture cancelled before frame %d/%d", mutation.index, total)
                    raise RunCancelled("capture", mutation.index)
                try:
                    renderer.apply_mutation(mutation)
                    pixels = renderer.capture_frame(width)
                    buffer.append(RasterFrame.from_array(mutation.index, pixels))
                except Exception as e:
                    _handle_frame_failure(buffer, mutation.index, e, policy)
                status = mutation.label or f"Capturing frame {i + 1}/{total}..."
                meter.report((i + 1) / total * 100.0, status)

            if buffer.is_empty:
                raise CaptureFailed(
                    None, message=f"no frames captured ({len(buffer.skipped)} skipped)"
                )
    except BaseException:
        buffer.clear()
        raise

    if buffer.skipped:
        logger.warning(
            "captured %d/%d frames, skipped %s",
            len(buffer),
            total,
            [s.frame_index for s in buffer.skipped],
        )
    else:
        logger.debug("captured %d frames at width=%d", len(buffer), width)
    meter.complete(f"Captured {len(buffer)} frames")
    return buffer


def _handle_frame_failure(
    buffer: FrameBuffer, frame_index: int, error: Exception, policy: CapturePolicy
) -> None:
    if frame_index == 0 and policy.fatal_first_frame:
        logger.error("first frame capture failed: %s", error)
        raise CaptureFailed(frame_index, error) from error
    if not policy.skip_failed_frames:
        logger.error("frame %d capture failed: %s", frame_index, error)
        raise CaptureFailed(frame_index, error) from error
    buffer.record_skip(frame_index, f"{type(error).__name__}: {error}")
    logger.warning("frame %d capture failed, skipped: %s", frame_index, error)


__all__ = ["CapturePolicy", "DEFAULT_POLICY", "capture"]
