"""
どこで: `common` パッケージ。
何を: engine/api 双方で使う軽量ユーティリティ（環境変数パース、設定、ロギング初期化）。
なぜ: 共通基盤を分離し、依存の向きを単純化するため。
"""

from . import settings
from .env import env_float, env_int, env_str
from .logging import setup_default_logging

__all__ = [
    "settings",
    "env_float",
    "env_int",
    "env_str",
    "setup_default_logging",
]
