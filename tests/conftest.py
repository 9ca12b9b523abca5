"""共通フィクスチャ。

- 乱数シード固定
- 小さな ContentUnit 列とフェイクレンダラ
- 設定（環境変数）の隔離
"""

from __future__ import annotations

from typing import Iterator

import numpy as np
import pytest

from common import settings
from engine.animation import ContentUnit
from tests._utils.fakes import FakeRenderer


@pytest.fixture(scope="session", autouse=True)
def np_seed() -> None:
    """NumPy の乱数を固定。"""
    np.random.seed(12345)


@pytest.fixture()
def units3() -> list[ContentUnit]:
    return [
        ContentUnit("m1", 0, "Hello"),
        ContentUnit("m2", 1, "How are you?"),
        ContentUnit("m3", 2, "Fine"),
    ]


@pytest.fixture()
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture()
def clean_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """MRL_* を消した状態で設定を再読込し、終了後も再読込して戻す。"""
    for name in (
        "MRL_ENCODE_WORKERS",
        "MRL_VIDEO_TIMEOUT_FACTOR",
        "MRL_EXPORT_WORKERS",
        "MRL_EXPORT_QUEUE_SIZE",
        "MRL_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    settings.reload_from_env()
    yield
    monkeypatch.undo()
    settings.reload_from_env()
