"""
どこで: `common.settings`
何を: エクスポート系の環境変数を型付きで一元管理し、起動時に読み込む。
なぜ: `os.getenv` の散在を解消し、既定値/型の一貫性とテスト容易性を高めるため。
"""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_float, env_int, env_str


@dataclass
class _Settings:
    # Encode pool（全ランで共有する上限付きワーカ）
    ENCODE_WORKERS: int = 4

    # Video
    VIDEO_TIMEOUT_FACTOR: float = 1.5

    # ExportService（バックグラウンドジョブ）
    EXPORT_WORKERS: int = 1
    EXPORT_QUEUE_SIZE: int = 4

    # Misc
    LOG_LEVEL: str = "INFO"


_settings = _Settings()


def reload_from_env() -> None:
    """環境変数から設定を再読込。

    - 整数は `env_int`、浮動小数は `env_float` を使用。
    - ワーカ数は下限 1 に丸め、タイムアウト係数は 1.0 未満を許さない。
    """
    _settings.ENCODE_WORKERS = env_int("MRL_ENCODE_WORKERS", 4, min_value=1) or 1

    _settings.VIDEO_TIMEOUT_FACTOR = env_float("MRL_VIDEO_TIMEOUT_FACTOR", 1.5, min_value=1.0) or 1.5

    _settings.EXPORT_WORKERS = env_int("MRL_EXPORT_WORKERS", 1, min_value=1) or 1
    _settings.EXPORT_QUEUE_SIZE = env_int("MRL_EXPORT_QUEUE_SIZE", 4, min_value=1) or 1

    _settings.LOG_LEVEL = (env_str("MRL_LOG_LEVEL", "INFO") or "INFO").upper()


def get() -> _Settings:
    """現在の設定スナップショットを返す。"""
    return _settings


# 初期ロード
reload_from_env()


__all__ = ["get", "reload_from_env", "_Settings"]
