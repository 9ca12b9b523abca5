"""
どこで: `engine.animation.sequencer`。
何を: (様式, コンテンツ単位, フレーム予算) → `AnimationPlan` を決定する純粋関数群。
なぜ: フレーム数と各フレームの表示内容を決定的に求め、キャプチャ処理から独立に検証するため。

様式ごとの規則:
- none   : 全ユニット表示の 1 フレームのみ。
- reveal : 「初期(空) + ユニット毎 + 最終ホールド」の `n + 2` スロットへ予算を配分。
           k 番目のユニットのスロットでは 0..k を表示（一度表示したものは戻さない）。
- typing : reveal と同様だが、各ユニットに最大 5 ステップの部分テキスト表示を挟む。
           最終ステップは全文（カーソルなし）に戻す。
- scroll : 先頭ホールド 10% / イーズ付きスクロール 80% / 末尾ホールド 10%。

予算が自然フレーム数より小さい場合は比例圧縮し、0 フレームにはしない。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .types import (
    AnimationPlan,
    AnimationStyle,
    ContentUnit,
    FrameMutation,
    PartialText,
    ordered_units,
)

MAX_TYPING_STEPS = 5
SCROLL_NATURAL_FRAMES = 11


@dataclass(frozen=True, slots=True)
class _State:
    """フレーム 1 枚ぶんの抽象状態（表示ユニット数で表す）。"""

    visible: int
    partial: PartialText | None = None
    scroll: float = 0.0
    label: str = ""


def ease_in_out_quad(t: float) -> float:
    """二次の ease-in-out（t, 戻り値とも [0, 1]）。"""
    t = min(1.0, max(0.0, float(t)))
    if t < 0.5:
        return 2.0 * t * t
    return 1.0 - ((-2.0 * t + 2.0) ** 2) / 2.0


def _typing_steps(unit: ContentUnit, cap: int = MAX_TYPING_STEPS) -> int:
    # 空テキストでも「表示」の 1 ステップは必要
    return max(1, min(len(unit.text), cap))


def natural_frame_count(
    style: AnimationStyle | str | None, units: Sequence[ContentUnit]
) -> int:
    """予算の制約がない場合のフレーム数（GIF 出力の既定予算）。"""
    style = AnimationStyle.coerce(style)
    n = len(units)
    if n == 0 or style is AnimationStyle.NONE:
        return 1
    if style is AnimationStyle.REVEAL:
        return n + 2
    if style is AnimationStyle.TYPING:
        return 2 + sum(_typing_steps(u) for u in units)
    return SCROLL_NATURAL_FRAMES


def plan(
    style: AnimationStyle | str | None,
    units: Sequence[ContentUnit],
    frame_budget: int,
) -> AnimationPlan:
    """アニメーション計画を返す（例外を送出しない）。

    Parameters
    ----------
    style : AnimationStyle | str | None
        アニメーション様式。None は none 扱い。
    units : Sequence[ContentUnit]
        コンテンツ単位。`position` 昇順に並べ替えて扱う。
    frame_budget : int
        生成してよい最大フレーム数。1 未満は 1 とみなす。

    Returns
    -------
    AnimationPlan
        1 件以上、`frame_budget` 件以下の FrameMutation 列。
    """
    style = AnimationStyle.coerce(style)
    ordered = ordered_units(units)
    budget = max(1, int(frame_budget))

    if not ordered:
        states = [_State(0, label="Capturing empty state...")]
    elif style is AnimationStyle.NONE:
        states = [_State(len(ordered), label="Capturing frame...")]
    elif style is AnimationStyle.REVEAL:
        states = _reveal_states(ordered, budget)
    elif style is AnimationStyle.TYPING:
        states = _typing_states(ordered, budget)
    else:
        states = _scroll_states(ordered, budget)

    ids = tuple(u.unit_id for u in ordered)
    mutations = tuple(
        FrameMutation(
            index=i,
            visible_ids=ids[: s.visible],
            partial=s.partial,
            scroll_fraction=s.scroll,
            label=s.label,
        )
        for i, s in enumerate(states)
    )
    return AnimationPlan(style=style, mutations=mutations)


# ---- reveal ---------------------------------------------------------------


def _reveal_slots(units: Sequence[ContentUnit]) -> list[_State]:
    n = len(units)
    slots = [_State(0, label="Capturing initial frame...")]
    slots += [_State(k + 1, label=f"Capturing message {k + 1}/{n}...") for k in range(n)]
    slots.append(_State(n, label="Capturing final frame..."))
    return slots


def _reveal_states(units: Sequence[ContentUnit], budget: int) -> list[_State]:
    slots = _reveal_slots(units)
    if budget >= len(slots):
        return _stretch(slots, budget)
    return _compress_reveal(units, budget)


def _compress_reveal(units: Sequence[ContentUnit], budget: int) -> list[_State]:
    """予算 < n + 2 のときの圧縮。

    1) 最終ホールドを落とす → 2) 初期フレームを落とす → 3) 複数ユニットをまとめて表示。
    3) でも表示数は狭義単調増加し、最後のフレームは全ユニットを表示する。
    """
    n = len(units)
    slots = _reveal_slots(units)
    if budget >= n + 1:
        return slots[: n + 1]
    if budget >= n:
        return slots[1 : n + 1]
    counts = [-(-(i + 1) * n // budget) for i in range(budget)]  # ceil
    return [_State(c, label=f"Capturing messages {c}/{n}...") for c in counts]


# ---- typing ---------------------------------------------------------------


def _typing_slots(units: Sequence[ContentUnit], cap: int) -> list[_State]:
    n = len(units)
    slots = [_State(0, label="Capturing initial frame...")]
    for k, unit in enumerate(units):
        steps = _typing_steps(unit, cap)
        length = len(unit.text)
        label = f"Typing message {k + 1}/{n}..."
        for step in range(1, steps + 1):
            if step < steps:
                cut = (step * length) // steps
                partial = PartialText(unit.unit_id, unit.text[:cut], cursor=True)
            else:
                partial = PartialText(unit.unit_id, unit.text, cursor=False)
            slots.append(_State(k + 1, partial=partial, label=label))
    slots.append(_State(n, label="Capturing final frame..."))
    return slots


def _typing_states(units: Sequence[ContentUnit], budget: int) -> list[_State]:
    # 予算に収まるまでユニット毎のステップ上限を下げる（5 → 1）
    for cap in range(MAX_TYPING_STEPS, 0, -1):
        natural = 2 + sum(_typing_steps(u, cap) for u in units)
        if natural <= budget:
            return _stretch(_typing_slots(units, cap), budget)
    return _compress_reveal(units, budget)


# ---- scroll ---------------------------------------------------------------


def _scroll_states(units: Sequence[ContentUnit], budget: int) -> list[_State]:
    n = len(units)
    hold = budget // 10
    sweep = budget - 2 * hold
    states = [_State(n, scroll=0.0, label="Starting scroll animation...")] * hold
    for i in range(sweep):
        t = i / (sweep - 1) if sweep > 1 else 1.0
        states.append(
            _State(n, scroll=ease_in_out_quad(t), label=f"Scrolling {round(t * 100)}%...")
        )
    states += [_State(n, scroll=1.0, label="Capturing end frames...")] * hold
    return states


# ---- helpers --------------------------------------------------------------


def _stretch(slots: list[_State], budget: int) -> list[_State]:
    """各スロットへ `budget // len` 枚を配分し、端数は最終スロットへ寄せる。"""
    per, extra = divmod(budget, len(slots))
    out: list[_State] = []
    for s in slots:
        out.extend([s] * per)
    out.extend([slots[-1]] * extra)
    return out


__all__ = [
    "MAX_TYPING_STEPS",
    "SCROLL_NATURAL_FRAMES",
    "ease_in_out_quad",
    "natural_frame_count",
    "plan",
]
