"""
どこで: `engine.progress`。
何を: 進捗イベント（`ProgressEvent`/`ErrorEvent`）と、単調非減少を保証する `ProgressMeter`。
なぜ: キャプチャ/エンコード/ラン全体で同じ規則（減らない・成功時のみ 100）を共有するため。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional


@dataclass(frozen=True)
class ProgressEvent:
    """進捗通知。percent は [0, 100]。"""

    percent: float
    status: str


@dataclass(frozen=True)
class ErrorEvent:
    """失敗通知（100% を偽装せず、進捗とは別イベントで伝える）。"""

    percent: float
    status: str
    error: BaseException


ProgressCallback = Callable[[ProgressEvent], None]


class ProgressMeter:
    """単調非減少の進捗レポータ。

    - `report()` は下がる値を直前値に丸め、100 未満（最大 99）にクリップする。
    - 100 は `complete()` でのみ送出する（成功時の終端イベント）。
    - `max_step` 指定時は 1 イベントで進む量をその値以下に分割する
      （0→100 で最低 11 イベントになるため、エンコーダの更新回数保証に使う）。
    """

    def __init__(
        self, callback: Optional[ProgressCallback], *, max_step: float | None = None
    ) -> None:
        self._callback = callback
        self._max_step = max_step
        self._last: float | None = None
        self._events = 0

    @property
    def last(self) -> float:
        return 0.0 if self._last is None else self._last

    @property
    def events(self) -> int:
        return self._events

    def report(self, percent: float, status: str) -> None:
        target = min(99.0, max(0.0, float(percent)))
        self._advance(target, status)

    def complete(self, status: str = "Complete!") -> None:
        self._advance(100.0, status)

    def _advance(self, target: float, status: str) -> None:
        if self._last is not None and target < self._last:
            target = self._last
        if self._max_step is not None and self._last is not None:
            while target - self._last > self._max_step:
                self._emit(self._last + self._max_step, status)
        self._emit(target, status)

    def _emit(self, percent: float, status: str) -> None:
        self._last = percent
        self._events += 1
        if self._callback is not None:
            self._callback(ProgressEvent(round(percent, 2), status))


def scale_progress(
    callback: Optional[ProgressCallback], start: float, end: float
) -> Optional[ProgressCallback]:
    """区間 [0, 100] の進捗を [start, end] へ写像するコールバックを返す。"""
    if callback is None:
        return None
    span = float(end) - float(start)

    def _scaled(ev: ProgressEvent) -> None:
        callback(ProgressEvent(round(start + span * ev.percent / 100.0, 2), ev.status))

    return _scaled


__all__ = ["ProgressEvent", "ErrorEvent", "ProgressCallback", "ProgressMeter", "scale_progress"]
