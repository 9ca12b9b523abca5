"""
どこで: `engine.capture` サブパッケージ。
何を: 計画（AnimationPlan）をレンダラ能力インターフェースに適用し、ラスタフレーム列を得る。
なぜ: 描画の実体（ヘッドレスブラウザ/ネイティブ描画/テスト用フェイク）から独立にキャプチャ手順を保つため。
"""

from .frame import FrameBuffer, RasterFrame
from .orchestrator import DEFAULT_POLICY, CapturePolicy, capture
from .renderer import Renderer

__all__ = ["DEFAULT_POLICY", "CapturePolicy", "FrameBuffer", "RasterFrame", "Renderer", "capture"]
