"""
どこで: `engine.export.artifact`。
何を: エンコード結果（バイト列 + メディアタイプ + 推奨ファイル名）。
なぜ: 保存先（ダウンロード/ファイル/HTTP 応答）の選択を呼び出し側に委ね、エンコーダは I/O を持たないため。
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional


@dataclass(frozen=True)
class EncodedArtifact:
    data: bytes
    media_type: str
    suggested_filename: str

    def __len__(self) -> int:
        return len(self.data)

    @property
    def size_bytes(self) -> int:
        return len(self.data)


def suggested_filename(ext: str, when: Optional[date] = None) -> str:
    """`mockup-YYYY-MM-DD.<ext>` 形式の推奨ファイル名を返す。"""
    if when is None:
        when = datetime.now()
    if isinstance(when, datetime):
        when = when.date()
    return f"mockup-{when.isoformat()}.{ext.lstrip('.')}"


__all__ = ["EncodedArtifact", "suggested_filename"]
