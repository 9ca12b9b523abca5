"""
チャット風モックアップを Pillow で描いてアニメーション GIF / 動画に書き出すデモ。

実行:
    python demo/chat_mockup.py reveal gif
    python demo/chat_mockup.py scroll video

`PillowChatRenderer` は `Renderer` 能力インターフェースの最小実装。
変更（表示ユニット・部分テキスト・スクロール量）を内部状態に持ち、キャプチャ時に毎回描き直す。
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from api import (
    ContentUnit,
    ExportError,
    FrameMutation,
    default_settings,
    estimate_size,
    export_animation,
    setup_default_logging,
    shutdown_default_pool,
)

logger = logging.getLogger(__name__)

BASE_WIDTH = 400
BUBBLE_H = 56
GAP = 14
VIEW_H = 240
BG = (245, 246, 250)
SENT = (59, 130, 246)
RECEIVED = (229, 231, 235)


class PillowChatRenderer:
    def __init__(self, units: list[ContentUnit]) -> None:
        self.units = sorted(units, key=lambda u: u.position)
        self._font = ImageFont.load_default()
        self.restore_original_state()

    def apply_mutation(self, mutation: FrameMutation) -> None:
        self._visible = set(mutation.visible_ids)
        self._partial = mutation.partial
        self._scroll = mutation.scroll_fraction

    def capture_frame(self, target_width: int) -> np.ndarray:
        img = Image.new("RGB", (BASE_WIDTH, VIEW_H), BG)
        draw = ImageDraw.Draw(img)
        content_h = GAP + len(self.units) * (BUBBLE_H + GAP)
        offset = int(max(0, content_h - VIEW_H) * self._scroll)
        y = GAP - offset
        for i, unit in enumerate(self.units):
            if unit.unit_id in self._visible:
                text = unit.text
                if self._partial is not None and self._partial.unit_id == unit.unit_id:
                    text = self._partial.display_text
                mine = i % 2 == 1
                x0, x1 = (140, BASE_WIDTH - 16) if mine else (16, BASE_WIDTH - 140)
                draw.rounded_rectangle(
                    (x0, y, x1, y + BUBBLE_H), radius=16, fill=SENT if mine else RECEIVED
                )
                draw.text(
                    (x0 + 14, y + 20),
                    text,
                    fill=(255, 255, 255) if mine else (17, 24, 39),
                    font=self._font,
                )
            y += BUBBLE_H + GAP
        height = max(1, round(VIEW_H * target_width / BASE_WIDTH))
        img = img.resize((int(target_width), height), Image.Resampling.LANCZOS)
        return np.asarray(img)

    def restore_original_state(self) -> None:
        self._visible = {u.unit_id for u in self.units}
        self._partial = None
        self._scroll = 0.0


def main() -> int:
    setup_default_logging()
    style = sys.argv[1] if len(sys.argv) > 1 else "reveal"
    kind = sys.argv[2] if len(sys.argv) > 2 else "gif"

    units = [
        ContentUnit("m1", 0, "Hey! Did you see the new release?"),
        ContentUnit("m2", 1, "Yes, the export is so much faster"),
        ContentUnit("m3", 2, "Let's ship the mockup today"),
        ContentUnit("m4", 3, "On it"),
    ]
    settings = default_settings(kind)
    _, label = estimate_size(len(units), style, settings)
    logger.info("estimated size: %s", label)

    def _progress(ev) -> None:
        logger.info("%5.1f%% %s", ev.percent, ev.status)

    try:
        artifact = export_animation(
            PillowChatRenderer(units), units, style, settings, on_progress=_progress
        )
    except ExportError as e:
        logger.error("export failed: %s", e)
        return 1
    finally:
        shutdown_default_pool()
    out = Path(artifact.suggested_filename)
    out.write_bytes(artifact.data)
    logger.info("wrote %s (%d bytes, %s)", out, len(artifact.data), artifact.media_type)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
