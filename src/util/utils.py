"""
どこで: `util.utils`。
何を: エクスポート既定値（`gif` / `video` セクション）の YAML 構成を探して読み込む。
なぜ: 既定値をコードから外し、リポジトリ直下の `config.yaml` で手元だけ上書きできるようにするため。

読み込み順（後勝ち、トップレベル単位で置き換え）:
1) `configs/default.yaml`
2) ルート `config.yaml`
壊れた/辞書でないファイルは警告を出して無視する。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = Path("configs") / "default.yaml"
LOCAL_CONFIG = Path("config.yaml")


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("config %s ignored: %s", path, e)
        return {}
    if data is None:
        return {}
    if not isinstance(data, dict):
        logger.warning("config %s ignored: top level is %s, not a mapping", path, type(data).__name__)
        return {}
    return data


def _find_project_root(start: Path) -> Path:
    """`configs/default.yaml` か `pyproject.toml` を持つ最も近い上位ディレクトリ。

    見つからなければ `start.parent.parent`（典型: <repo>/src/util -> <repo>）。
    """
    cur = start.resolve()
    for parent in (cur, *cur.parents):
        if (parent / DEFAULT_CONFIG).is_file() or (parent / "pyproject.toml").is_file():
            return parent
    return cur.parent.parent


def load_config(root: Path | None = None) -> Dict[str, Any]:
    """既定 → ローカルの順に読み、トップレベルのキー単位で上書きした辞書を返す。"""
    project_root = root if root is not None else _find_project_root(Path(__file__).parent)
    merged: Dict[str, Any] = {}
    for layer in (DEFAULT_CONFIG, LOCAL_CONFIG):
        merged.update(_read_yaml(project_root / layer))
    return merged


def config_section(cfg: Mapping[str, Any], key: str) -> Dict[str, Any]:
    """`cfg[key]` が辞書ならその複製、それ以外は空辞書。"""
    value = cfg.get(key)
    return dict(value) if isinstance(value, Mapping) else {}


__all__ = ["config_section", "load_config"]
