"""
どこで: `engine.animation` の型定義。
何を: `ContentUnit`/`FrameMutation`/`AnimationPlan` と様式列挙 `AnimationStyle`。
なぜ: シーケンサ・オーケストレータ・レンダラ間で受け渡す指示の形を固定するため。
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Sequence

TYPING_CURSOR = "\u258c"  # ▌


class AnimationStyle(str, Enum):
    """アニメーション様式。文字列（"reveal" 等）からも生成できる。"""

    NONE = "none"
    REVEAL = "reveal"
    TYPING = "typing"
    SCROLL = "scroll"

    @classmethod
    def coerce(cls, value: "AnimationStyle | str | None") -> "AnimationStyle":
        if value is None:
            return cls.NONE
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        if key in {"", "static"}:
            return cls.NONE
        return cls(key)


@dataclass(frozen=True, slots=True)
class ContentUnit:
    """個別に表示/非表示できるコンテンツ 1 件（例: メッセージ 1 通）。"""

    unit_id: str
    position: int
    text: str = ""


@dataclass(frozen=True, slots=True)
class PartialText:
    """タイピング途中の部分テキスト。`cursor=True` の間だけ末尾にカーソル記号が付く。"""

    unit_id: str
    text: str
    cursor: bool

    @property
    def display_text(self) -> str:
        return f"{self.text}{TYPING_CURSOR}" if self.cursor else self.text


@dataclass(frozen=True, slots=True)
class FrameMutation:
    """次のキャプチャ前にレンダラへ適用する状態。

    - visible_ids: 表示するユニット ID（それ以外は非表示）。
    - partial: 1 ユニット分の部分テキスト上書き（なければ None）。
    - scroll_fraction: 最大スクロール量に対する割合 [0, 1]（画素換算はレンダラ側）。
    - label: 進捗表示用の短い説明。
    """

    index: int
    visible_ids: tuple[str, ...]
    partial: PartialText | None = None
    scroll_fraction: float = 0.0
    label: str = ""


@dataclass(frozen=True)
class AnimationPlan:
    """フレーム毎の `FrameMutation` の順序付き列（常に 1 件以上）。"""

    style: AnimationStyle
    mutations: tuple[FrameMutation, ...]

    def __post_init__(self) -> None:
        if not self.mutations:
            raise ValueError("AnimationPlan は 1 件以上の FrameMutation を必要とします")

    def __len__(self) -> int:
        return len(self.mutations)

    def __iter__(self) -> Iterator[FrameMutation]:
        return iter(self.mutations)

    def __getitem__(self, i: int) -> FrameMutation:
        return self.mutations[i]

    @property
    def frame_count(self) -> int:
        return len(self.mutations)


def ordered_units(units: Sequence[ContentUnit]) -> list[ContentUnit]:
    """`position` 昇順（同順位は入力順）に並べ替えたコピーを返す。"""
    return sorted(units, key=lambda u: u.position)


__all__ = [
    "TYPING_CURSOR",
    "AnimationStyle",
    "ContentUnit",
    "PartialText",
    "FrameMutation",
    "AnimationPlan",
    "ordered_units",
]
