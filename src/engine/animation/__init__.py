"""
どこで: `engine.animation` サブパッケージ。
何を: アニメーション様式とコンテンツ単位から、フレーム毎の変更指示列（AnimationPlan）を決定する。
なぜ: 「何枚・何を見せるか」を純粋関数に閉じ込め、キャプチャ/エンコードから独立に検証できるようにするため。
"""

from .sequencer import ease_in_out_quad, natural_frame_count, plan
from .types import AnimationPlan, AnimationStyle, ContentUnit, FrameMutation, PartialText

__all__ = [
    "AnimationPlan",
    "AnimationStyle",
    "ContentUnit",
    "FrameMutation",
    "PartialText",
    "ease_in_out_quad",
    "natural_frame_count",
    "plan",
]
