"""書き出した動画を ffmpeg で読み戻して長さとフレーム数を得るテスト補助。"""

from __future__ import annotations

from pathlib import Path

import imageio.v2 as iio

from engine.export.artifact import EncodedArtifact


def read_video_stats(artifact: EncodedArtifact, tmp_dir: Path) -> tuple[float, int]:
    """(duration 秒, フレーム数) を返す。"""
    path = Path(tmp_dir) / artifact.suggested_filename
    path.write_bytes(artifact.data)
    reader = iio.get_reader(str(path), format="FFMPEG")
    try:
        duration = float(reader.get_meta_data()["duration"])
        frames = int(reader.count_frames())
    finally:
        reader.close()
    return duration, frames
