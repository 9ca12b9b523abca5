"""
どこで: `engine.export.pool`。
何を: 全ランで共有する上限付きのエンコードワーカプール（FIFO）。
なぜ: 同時に複数ランが走ってもスレッド数を `MRL_ENCODE_WORKERS` で頭打ちにし、
      各ランの並列度（品質段階の workers）はウィンドウ幅で別途制限するため。
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional, Sequence, TypeVar

from common import settings as _settings
from engine.errors import RunCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class EncodePool:
    """上限付きワーカプール。投入順（FIFO）に処理される。"""

    def __init__(self, max_workers: int | None = None) -> None:
        n = int(max_workers) if max_workers is not None else _settings.get().ENCODE_WORKERS
        self.max_workers = max(1, n)
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="EncodeWorker"
        )
        self._closed = False

    def submit(self, fn: Callable[..., R], *args, **kwargs) -> "Future[R]":
        if self._closed:
            raise RuntimeError("EncodePool は既に閉じられています")
        return self._executor.submit(fn, *args, **kwargs)

    def map_ordered(
        self,
        fn: Callable[[T], R],
        items: Sequence[T],
        *,
        window: int,
        on_done: Optional[Callable[[int], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> list[R]:
        """`items` を最大 `window` 件ずつ並列に処理し、入力順の結果リストを返す。

        - 結果は入力順に回収し、回収ごとに `on_done(index)` を呼ぶ。
        - ワーカ例外はそのまま送出し、未着手のタスクは取り消す。
        - `cancel_event` がセットされたら未着手のタスクを取り消して `RunCancelled` を送出する。
        """
        width = max(1, int(window))
        results: list[R] = []
        pending: "deque[tuple[int, Future[R]]]" = deque()
        source = iter(enumerate(items))

        def _fill() -> None:
            while len(pending) < width:
                nxt = next(source, None)
                if nxt is None:
                    return
                i, item = nxt
                pending.append((i, self.submit(fn, item)))

        try:
            _fill()
            while pending:
                i, fut = pending.popleft()
                results.append(fut.result())
                if on_done is not None:
                    on_done(i)
                if cancel_event is not None and cancel_event.is_set():
                    raise RunCancelled("encode", i)
                _fill()
        except BaseException:
            for _, fut in pending:
                fut.cancel()
            raise
        return results

    def close(self, wait: bool = True) -> None:
        self._closed = True
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def __enter__(self) -> "EncodePool":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


_default_pool: EncodePool | None = None
_default_lock = threading.Lock()


def get_default_pool() -> EncodePool:
    """プロセス共有の既定プールを返す（初回呼び出しで生成）。"""
    global _default_pool
    with _default_lock:
        if _default_pool is None:
            _default_pool = EncodePool()
            logger.debug("encode pool started (workers=%d)", _default_pool.max_workers)
        return _default_pool


def shutdown_default_pool() -> None:
    global _default_pool
    with _default_lock:
        pool, _default_pool = _default_pool, None
    if pool is not None:
        pool.close()


__all__ = ["EncodePool", "get_default_pool", "shutdown_default_pool"]
