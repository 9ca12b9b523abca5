"""
どこで: `engine.export.gif`。
何を: FrameBuffer をパレット化アニメーション GIF にエンコードする `GifEncoder`。
なぜ: 量子化と LZW 圧縮（いずれも Pillow）をフレーム単位で共有ワーカプールへ逃がし、
      品質段階ごとの並列度で 1 ラン内の同時実行数を制限するため。

規則:
- フレーム表示時間は `frame_delay_ms`、最終フレームのみ 2 倍（読み終わりの間）。
- `loop=True` で無限ループ、`False` で 1 回再生。
- 進捗は 10% 刻み以下で最低 10 回通知し、成功時のみ 100 で終わる。

ストリームは `GifImagePlugin.getheader` / `getdata` で組み立てる。
`save_all` と違い同一内容の連続フレームもまとめず 1 フレームずつ書き出される。
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Sequence

import numpy as np
from PIL import GifImagePlugin, Image

from engine.capture.frame import FrameBuffer, RasterFrame
from engine.errors import EncodingFailed, ExportError, RunCancelled
from engine.progress import ProgressCallback, ProgressMeter

from .artifact import EncodedArtifact, suggested_filename
from .pool import EncodePool, get_default_pool
from .settings import GifSettings, QualityProfile

logger = logging.getLogger(__name__)

BACKGROUND = (255, 255, 255)
TRAILER = b";"
# 前フレームを残したまま次を重ねる
DISPOSAL_KEEP = 1


def quantize_frame(frame: RasterFrame, profile: QualityProfile) -> Image.Image:
    """RGB フレームを品質段階の色数でパレット化した "P" 画像を返す。"""
    img = Image.fromarray(np.ascontiguousarray(frame.rgb(BACKGROUND)))
    q = img.quantize(colors=int(profile.palette_size), method=Image.Quantize.MEDIANCUT)
    if profile.dither:
        # ディザはパレット指定の再量子化でのみ効く
        q = img.quantize(palette=q, dither=Image.Dither.FLOYDSTEINBERG)
    return q


def frame_data(image: Image.Image, delay_ms: int) -> bytes:
    """1 フレーム分（GCE + 画像記述子 + ローカルカラーテーブル + 画像データ）。"""
    chunks = GifImagePlugin.getdata(
        image, duration=int(delay_ms), disposal=DISPOSAL_KEEP, include_color_table=True
    )
    return b"".join(chunks)


def stream_header(width: int, height: int, *, loop: bool, delay_ms: int) -> bytes:
    """`GIF89a` ヘッダと論理画面記述子（背景色のみのグローバルテーブル）、必要ならループ拡張。"""
    canvas = Image.new("P", (int(width), int(height)), 0)
    canvas.putpalette(bytes(BACKGROUND) + b"\x00\x00\x00")
    # duration を渡すのは loop なしでも 89a を選ばせるため
    info = {"loop": 0} if loop else {"duration": int(delay_ms)}
    header, _ = GifImagePlugin.getheader(canvas, info=info)
    return b"".join(header)


def assemble(
    width: int, height: int, blocks: Sequence[bytes], *, loop: bool, delay_ms: int
) -> bytes:
    if not blocks:
        raise ValueError("GIF には 1 フレーム以上が必要です")
    return stream_header(width, height, loop=loop, delay_ms=delay_ms) + b"".join(blocks) + TRAILER


class GifEncoder:
    """GIF エンコーダ。

    Parameters
    ----------
    pool : EncodePool | None
        フレームタスクを流すワーカプール。None でプロセス共有の既定プール。
    """

    def __init__(self, pool: EncodePool | None = None) -> None:
        self._pool = pool

    def encode(
        self,
        buffer: FrameBuffer,
        settings: GifSettings,
        on_progress: Optional[ProgressCallback] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> EncodedArtifact:
        meter = ProgressMeter(on_progress, max_step=10.0)
        if buffer is None or buffer.is_empty:
            raise EncodingFailed("gif", message="cannot encode an empty frame buffer")

        profile = settings.profile()
        total = len(buffer)
        delays = [int(settings.frame_delay_ms)] * total
        delays[-1] *= 2
        pool = self._pool if self._pool is not None else get_default_pool()
        meter.report(0, "Initializing GIF encoder...")
        logger.debug(
            "gif encode: frames=%d size=%dx%d palette=%d dither=%s workers=%d",
            total,
            buffer.width,
            buffer.height,
            profile.palette_size,
            profile.dither,
            profile.workers,
        )

        def _encode_frame(item: tuple[int, RasterFrame]) -> bytes:
            pos, frame = item
            return frame_data(quantize_frame(frame, profile), delays[pos])

        done = 0

        def _on_done(_i: int) -> None:
            nonlocal done
            done += 1
            meter.report(5.0 + 85.0 * done / total, f"Encoding frame {done}/{total}...")

        try:
            blocks = pool.map_ordered(
                _encode_frame,
                list(enumerate(buffer)),
                window=profile.workers,
                on_done=_on_done,
                cancel_event=cancel_event,
            )
            meter.report(95, "Writing GIF...")
            data = assemble(
                buffer.width,
                buffer.height,
                blocks,
                loop=settings.loop,
                delay_ms=settings.frame_delay_ms,
            )
        except (ExportError, RunCancelled):
            raise
        except Exception as e:
            logger.error("gif encoding failed: %s", e)
            raise EncodingFailed("gif", e) from e

        logger.info("gif encoded: %d frames, %d bytes", total, len(data))
        meter.complete("Complete!")
        return EncodedArtifact(
            data=data, media_type="image/gif", suggested_filename=suggested_filename("gif")
        )


__all__ = ["GifEncoder", "assemble", "frame_data", "quantize_frame", "stream_header"]
